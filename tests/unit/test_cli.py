# tests/unit/test_cli.py
import json

import pytest
from click.testing import CliRunner

from offersync.cli.sync import cli
from offersync.core.exceptions import ProductNotFoundError


@pytest.fixture
def orchestrator(mocker):
    fake = mocker.Mock()
    mocker.patch("offersync.cli.sync.build_orchestrator", return_value=fake)
    return fake


def result_stub(mocker, **fields):
    result = mocker.Mock()
    result.model_dump.return_value = fields
    return result


def test_run_prints_job_result(orchestrator, mocker):
    orchestrator.run_sync = mocker.AsyncMock(
        return_value=result_stub(mocker, job_id=7, status="COMPLETED", processed=3)
    )

    outcome = CliRunner().invoke(cli, ["--log-level", "WARNING", "run", "--strategy", "db-to-market", "--batch-size", "3"])

    assert outcome.exit_code == 0
    assert json.loads(outcome.output) == {"job_id": 7, "status": "COMPLETED", "processed": 3}
    orchestrator.run_sync.assert_awaited_once_with("db-to-market", 3)


def test_run_rejects_unknown_strategy(orchestrator):
    outcome = CliRunner().invoke(cli, ["--log-level", "WARNING", "run", "--strategy", "sideways"])

    assert outcome.exit_code == 2


def test_product_not_found_is_a_click_error(orchestrator, mocker):
    orchestrator.sync_product = mocker.AsyncMock(side_effect=ProductNotFoundError("Product 42 not found"))

    outcome = CliRunner().invoke(cli, ["--log-level", "WARNING", "product", "42"])

    assert outcome.exit_code == 1
    assert "Product 42 not found" in outcome.output


def test_abandon_stale_reports_job_ids(orchestrator, mocker):
    orchestrator.abandon_stale_jobs = mocker.AsyncMock(return_value=[3, 5])

    outcome = CliRunner().invoke(cli, ["--log-level", "WARNING", "abandon-stale"])

    assert outcome.exit_code == 0
    assert "Marked 2 job(s) FAILED: 3, 5" in outcome.output
