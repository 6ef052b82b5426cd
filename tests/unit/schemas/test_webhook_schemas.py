# tests/unit/schemas/test_webhook_schemas.py
import pytest

from offersync.core.exceptions import WebhookPayloadError
from offersync.schemas.marketplace import RemoteOffer
from offersync.schemas.webhook import (
    InventoryUpdatedPayload,
    OfferUpdatedPayload,
    OrderEventPayload,
    UnknownEventPayload,
    WebhookEnvelope,
    extract_external_event_id,
    parse_webhook_payload,
)


@pytest.mark.parametrize(
    "payload",
    [
        {"offerId": "OFF-1", "available": 3},
        {"offer_id": "OFF-1", "stock": 3},
        {"offer": {"id": "OFF-1", "stock": {"available": 3}}},
        {"offer": {"id": "OFF-1"}, "quantity": 3},
    ],
)
def test_inventory_payload_shapes(payload):
    parsed = parse_webhook_payload("inventory.updated", payload)

    assert isinstance(parsed, InventoryUpdatedPayload)
    assert (parsed.offer_id, parsed.available) == ("OFF-1", 3)


def test_inventory_payload_rejects_negative_stock():
    with pytest.raises(WebhookPayloadError):
        parse_webhook_payload("inventory.updated", {"offerId": "OFF-1", "available": -1})


def test_order_payload_accepts_bare_order():
    parsed = parse_webhook_payload("order.created", {"id": "ORD-1", "lineItems": [{"offer": {"id": 5}, "quantity": 2}]})

    assert isinstance(parsed, OrderEventPayload)
    assert parsed.order.id == "ORD-1"
    assert parsed.order.line_items[0].offer.id == "5"


def test_order_payload_rejects_non_positive_quantity():
    with pytest.raises(WebhookPayloadError):
        parse_webhook_payload("order.created", {"order": {"id": "ORD-1", "lineItems": [{"offer": {"id": "5"}, "quantity": 0}]}})


def test_offer_payload_requires_offer():
    with pytest.raises(WebhookPayloadError):
        parse_webhook_payload("offer.updated", {"id": "evt-1"})


def test_offer_payload_flattens_wire_shape():
    parsed = parse_webhook_payload("offer.updated", {
        "offer": {"id": "OFF-1", "sellingMode": {"price": {"amount": "10", "currency": "eur"}}, "stock": 4}
    })

    assert isinstance(parsed, OfferUpdatedPayload)
    assert parsed.offer.currency == "EUR"
    assert parsed.offer.stock_quantity == 4


def test_unknown_type_becomes_unknown_variant():
    parsed = parse_webhook_payload("offer.archived", {"offerId": "OFF-1"})

    assert isinstance(parsed, UnknownEventPayload)
    assert parsed.event_type == "offer.archived"
    assert parsed.raw == {"offerId": "OFF-1"}


def test_external_event_id_prefers_payload_id():
    assert extract_external_event_id("order.created", {"id": 42}) == "42"
    assert extract_external_event_id("order.created", {"eventId": "e-1"}) == "e-1"


def test_bare_order_id_is_not_an_event_id():
    body = {"id": "ORD-1", "lineItems": [{"offer": {"id": "OFF-1"}, "quantity": 2}]}

    created = extract_external_event_id("order.created", body)
    updated = extract_external_event_id("order.updated", dict(body, status="CANCELLED"))

    assert created != "ORD-1"
    assert created.startswith("order.created:")
    assert updated.startswith("order.updated:")
    assert extract_external_event_id("order.created", dict(body, eventId="e-7")) == "e-7"


def test_external_event_id_falls_back_to_content_hash():
    stamp = "2026-10-01T10:00:00Z"
    first = extract_external_event_id("order.created", {"order": {"id": "A"}, "n": 1, "occurredAt": stamp})
    reordered = extract_external_event_id("order.created", {"occurredAt": stamp, "n": 1, "order": {"id": "A"}})
    other = extract_external_event_id("order.created", {"order": {"id": "B"}, "n": 1, "occurredAt": stamp})
    retyped = extract_external_event_id("order.updated", {"order": {"id": "A"}, "n": 1, "occurredAt": stamp})

    assert first == reordered
    assert first != other
    assert first != retyped
    assert first.startswith("order.created:")


def test_identical_bodies_without_timestamp_get_distinct_ids():
    body = {"offerId": "OFF-1", "quantity": 5}

    assert extract_external_event_id("inventory.updated", body) != extract_external_event_id("inventory.updated", body)


def test_delivery_id_keys_events_without_payload_id():
    body = {"offerId": "OFF-1", "quantity": 5}

    first = extract_external_event_id("inventory.updated", body, delivery_id="d-1")
    again = extract_external_event_id("inventory.updated", dict(body), delivery_id="d-1")

    assert first == again == "inventory.updated:delivery:d-1"
    assert extract_external_event_id("inventory.updated", {"id": "evt-1"}, delivery_id="d-1") == "evt-1"


def test_envelope_without_payload_key_uses_body():
    envelope = WebhookEnvelope.model_validate({"type": "inventory.updated", "offerId": "OFF-1", "available": 2, "secret": "s"})

    assert envelope.resolved_type == "inventory.updated"
    assert envelope.resolved_payload() == {"offerId": "OFF-1", "available": 2}


def test_envelope_accepts_event_type_alias():
    envelope = WebhookEnvelope.model_validate({"eventType": "order.created", "payload": {"id": "x"}})

    assert envelope.resolved_type == "order.created"
    assert envelope.resolved_payload() == {"id": "x"}


def test_remote_offer_version_marker_falls_back_to_timestamp():
    with_revision = RemoteOffer.model_validate({"id": "1", "revision": "r9", "updatedAt": "2026-01-01T00:00:00Z"})
    without_revision = RemoteOffer.model_validate({"id": "1", "updatedAt": "2026-01-01T00:00:00Z"})

    assert with_revision.version_marker == "r9"
    assert without_revision.version_marker == "2026-01-01T00:00:00"
