# tests/unit/services/test_conflict_resolver.py
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from offersync.core.enums import Resolution
from offersync.services.sync.conflict_resolver import (
    LocalVersion,
    RemoteVersion,
    find_incompatibilities,
    local_changed,
    remote_changed,
    resolve,
)

T = datetime(2026, 10, 1, 12, 0, 0)
LAST_SYNC = T - timedelta(hours=1)


def make_local(**overrides) -> LocalVersion:
    values = dict(
        entity_id=1,
        title="Fender Stratocaster",
        price=Decimal("4999.00"),
        currency="PLN",
        stock_quantity=3,
        updated_at=LAST_SYNC - timedelta(minutes=5),
        last_synced_at=LAST_SYNC,
        last_remote_revision="rev-1",
        last_remote_updated_at=LAST_SYNC,
    )
    values.update(overrides)
    return LocalVersion(**values)


def make_remote(**overrides) -> RemoteVersion:
    values = dict(
        offer_id="OFF-1",
        title="Fender Stratocaster",
        price=Decimal("4999.00"),
        currency="PLN",
        stock_quantity=3,
        revision="rev-1",
        updated_at=LAST_SYNC,
    )
    values.update(overrides)
    return RemoteVersion(**values)


# --- Last-writer-wins when both sides changed ---

def test_local_newer_wins():
    local = make_local(updated_at=T + timedelta(seconds=1))
    remote = make_remote(revision="rev-2", updated_at=T)

    record = resolve(local, remote)

    assert record.resolution == Resolution.LOCAL_WINS
    assert record.entity_id == 1
    assert record.offer_id == "OFF-1"


def test_remote_newer_wins():
    local = make_local(updated_at=T)
    remote = make_remote(revision="rev-2", updated_at=T + timedelta(seconds=1))

    assert resolve(local, remote).resolution == Resolution.REMOTE_WINS


def test_equal_timestamps_go_to_the_marketplace():
    local = make_local(updated_at=T)
    remote = make_remote(revision="rev-2", updated_at=T)

    record = resolve(local, remote)

    assert record.resolution == Resolution.REMOTE_WINS
    assert "same instant" in record.reason


def test_both_changed_without_remote_timestamp_needs_review():
    local = make_local(updated_at=T)
    remote = make_remote(revision="rev-2", updated_at=None)

    assert resolve(local, remote).resolution == Resolution.MANUAL


# --- One side changed ---

def test_only_local_changed():
    local = make_local(updated_at=T)
    remote = make_remote()

    assert resolve(local, remote).resolution == Resolution.LOCAL_WINS


def test_only_remote_changed_even_with_an_older_remote_clock():
    # Local untouched since last sync; remote moved to a new revision with an older clock
    local = make_local(updated_at=LAST_SYNC)
    remote = make_remote(revision="rev-2", updated_at=LAST_SYNC - timedelta(days=1))

    assert resolve(local, remote).resolution == Resolution.REMOTE_WINS


def test_neither_changed_is_in_sync():
    record = resolve(make_local(), make_remote())

    assert record.resolution == Resolution.IN_SYNC


def test_never_synced_counts_as_local_change():
    local = make_local(last_synced_at=None)

    assert local_changed(local) is True


def test_remote_change_falls_back_to_timestamps_without_revisions():
    local = make_local(last_remote_revision=None)
    same = make_remote(revision=None, updated_at=LAST_SYNC)
    later = make_remote(revision=None, updated_at=LAST_SYNC + timedelta(minutes=1))

    assert remote_changed(local, same) is False
    assert remote_changed(local, later) is True


def test_remote_without_any_baseline_counts_as_changed():
    local = make_local(last_remote_revision=None, last_remote_updated_at=None)

    assert remote_changed(local, make_remote()) is True


# --- Incompatibilities ---

@pytest.mark.parametrize(
    "local_overrides, remote_overrides, fragment",
    [
        ({"stock_quantity": -1}, {}, "local stock is negative"),
        ({}, {"stock_quantity": -2}, "remote stock is negative"),
        ({"price": None}, {}, "missing price"),
        ({"title": ""}, {}, "missing title"),
        ({}, {"currency": "EUR"}, "currency mismatch"),
    ],
)
def test_incompatible_values_need_review(local_overrides, remote_overrides, fragment):
    local = make_local(updated_at=T, **local_overrides)
    remote = make_remote(**remote_overrides)

    record = resolve(local, remote)

    assert record.resolution == Resolution.MANUAL
    assert fragment in record.reason


def test_incompatibility_outranks_timestamps():
    local = make_local(updated_at=T + timedelta(hours=1), currency="PLN")
    remote = make_remote(revision="rev-2", updated_at=T, currency="EUR")

    assert resolve(local, remote).resolution == Resolution.MANUAL


def test_currency_comparison_ignores_case():
    assert find_incompatibilities(make_local(currency="pln"), make_remote(currency="PLN")) == []


# --- Purity ---

def test_resolve_is_deterministic_and_leaves_inputs_untouched():
    local = make_local(updated_at=T)
    remote = make_remote(revision="rev-2", updated_at=T - timedelta(minutes=1))
    local_before, remote_before = replace(local), replace(remote)

    first = resolve(local, remote)
    second = resolve(local, remote)

    assert first == second
    assert local == local_before
    assert remote == remote_before


def test_conflict_record_serialises_resolution_as_string():
    record = resolve(make_local(stock_quantity=-1), make_remote())

    data = record.to_dict()

    assert data["resolution"] == "MANUAL"
    assert data["entity_id"] == 1
    assert data["remote_version"] == "rev-1"
    assert data["local_version"] == (LAST_SYNC - timedelta(minutes=5)).isoformat()
