# tests/unit/test_core.py
from datetime import datetime, timedelta, timezone

import pytest

from offersync.core.config import Settings
from offersync.core.enums import OrderStatus, SyncJobType
from offersync.core.security import compute_signature, verify_webhook_request
from offersync.core.utils import to_naive_utc
from offersync.scheduler import create_scheduler


# --- Settings ---

def test_notification_emails_accept_comma_separated_env(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_EMAILS", "ops@example.com, owner@example.com,")

    settings = Settings(_env_file=None)

    assert settings.NOTIFICATION_EMAILS == ["ops@example.com", "owner@example.com"]


def test_postgres_url_gets_async_driver():
    settings = Settings(_env_file=None, DATABASE_URL="postgresql://user:pass@db/offersync")

    assert settings.async_database_url == "postgresql+asyncpg://user:pass@db/offersync"


# --- Webhook signatures ---

BODY = b'{"type": "order.created"}'


def test_signature_matches_body():
    signature = compute_signature("s3cret", BODY)

    assert verify_webhook_request("s3cret", BODY, signature=signature) is True
    assert verify_webhook_request("s3cret", BODY + b" ", signature=signature) is False


def test_inline_secret():
    assert verify_webhook_request("s3cret", BODY, inline_secret="s3cret") is True
    assert verify_webhook_request("s3cret", BODY, inline_secret="guess") is False


def test_no_credentials_rejected_when_secret_configured():
    assert verify_webhook_request("s3cret", BODY) is False


def test_everything_accepted_without_configured_secret():
    assert verify_webhook_request("", BODY) is True


# --- Enums and utils ---

@pytest.mark.parametrize(
    "remote, expected",
    [
        (None, OrderStatus.NEW),
        ("BOUGHT", OrderStatus.NEW),
        ("READY_FOR_SHIPMENT", OrderStatus.PROCESSING),
        ("canceled", OrderStatus.CANCELLED),
        ("SENT", OrderStatus.SENT),
        ("SOMETHING_NEW", OrderStatus.PROCESSING),
    ],
)
def test_order_status_from_remote(remote, expected):
    assert OrderStatus.from_remote(remote) == expected


def test_job_type_slugs_round_trip():
    for job_type in SyncJobType:
        assert SyncJobType.from_slug(job_type.slug) is job_type


def test_to_naive_utc():
    aware = datetime(2026, 10, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert to_naive_utc(aware) == datetime(2026, 10, 1, 10, 0)
    assert to_naive_utc(datetime(2026, 10, 1, 12, 0)) == datetime(2026, 10, 1, 12, 0)
    assert to_naive_utc(None) is None


# --- Scheduler ---

def test_scheduler_registers_enabled_jobs(settings, monkeypatch):
    monkeypatch.setattr("offersync.scheduler.scheduler", None)
    settings.SYNC_SCHEDULE_ENABLED = True
    settings.WEBHOOK_RETRY_ENABLED = True

    scheduler = create_scheduler(settings)

    assert {job.id for job in scheduler.get_jobs()} == {
        "scheduled_sync", "abandon_stale_jobs", "retry_failed_webhooks"
    }


def test_scheduler_always_sweeps_stale_jobs(settings, monkeypatch):
    monkeypatch.setattr("offersync.scheduler.scheduler", None)

    scheduler = create_scheduler(settings)

    assert [job.id for job in scheduler.get_jobs()] == ["abandon_stale_jobs"]
