"""
Conflict resolution between the local and the remote version of one offer.

``resolve`` is a pure function of its two arguments: no I/O, no clock.
The policy, checked in this order:

1. Semantically incompatible values -> MANUAL
   (negative stock on either side, local listing missing title/price/currency,
   currency mismatch).
2. Only one side changed since the last sync -> that side wins.
3. Both changed -> last-writer-wins on ``updated_at``; ties go to the
   marketplace (REMOTE_WINS); missing timestamps -> MANUAL.
4. Neither side changed -> IN_SYNC.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from offersync.core.enums import Resolution


@dataclass(frozen=True)
class LocalVersion:
    """Local product state plus the sync baseline stored on its mirror"""
    entity_id: int
    title: Optional[str]
    price: Optional[Decimal]
    currency: Optional[str]
    stock_quantity: int
    updated_at: Optional[datetime]
    last_synced_at: Optional[datetime] = None
    last_remote_revision: Optional[str] = None
    last_remote_updated_at: Optional[datetime] = None

    @classmethod
    def from_models(cls, product, mirror) -> "LocalVersion":
        return cls(
            entity_id=product.id,
            title=product.title,
            price=product.price,
            currency=product.currency,
            stock_quantity=product.stock_quantity,
            updated_at=product.updated_at,
            last_synced_at=mirror.last_synced_at if mirror else None,
            last_remote_revision=mirror.remote_revision if mirror else None,
            last_remote_updated_at=mirror.remote_updated_at if mirror else None,
        )


@dataclass(frozen=True)
class RemoteVersion:
    offer_id: str
    title: Optional[str]
    price: Optional[Decimal]
    currency: Optional[str]
    stock_quantity: int
    revision: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_offer(cls, offer) -> "RemoteVersion":
        return cls(
            offer_id=offer.id,
            title=offer.name,
            price=offer.amount,
            currency=offer.currency,
            stock_quantity=offer.stock_quantity,
            revision=offer.revision,
            updated_at=offer.updated_at,
        )


@dataclass(frozen=True)
class ConflictRecord:
    entity_id: int
    local_version: Optional[str]
    remote_version: Optional[str]
    resolution: Resolution
    reason: str
    offer_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["resolution"] = self.resolution.value
        return data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def local_changed(local: LocalVersion) -> bool:
    if local.last_synced_at is None:
        return True
    if local.updated_at is None:
        return False
    return local.updated_at > local.last_synced_at


def remote_changed(local: LocalVersion, remote: RemoteVersion) -> bool:
    if remote.revision is not None and local.last_remote_revision is not None:
        return remote.revision != local.last_remote_revision
    if remote.updated_at is not None and local.last_remote_updated_at is not None:
        return remote.updated_at > local.last_remote_updated_at
    # Nothing to compare against: the remote state has never been seen
    return True


def find_incompatibilities(local: LocalVersion, remote: RemoteVersion) -> List[str]:
    problems = []
    if local.stock_quantity < 0:
        problems.append(f"local stock is negative ({local.stock_quantity})")
    if remote.stock_quantity < 0:
        problems.append(f"remote stock is negative ({remote.stock_quantity})")

    missing = [name for name, value in (
        ("title", local.title),
        ("price", local.price),
        ("currency", local.currency),
    ) if value in (None, "")]
    if missing:
        problems.append(f"local listing is missing {', '.join(missing)}")

    if local.currency and remote.currency and local.currency.upper() != remote.currency.upper():
        problems.append(f"currency mismatch ({local.currency} vs {remote.currency})")
    return problems


@dataclass
class _Decision:
    resolution: Resolution
    reason: str


def _decide(local: LocalVersion, remote: RemoteVersion) -> _Decision:
    problems = find_incompatibilities(local, remote)
    if problems:
        return _Decision(Resolution.MANUAL, "; ".join(problems))

    is_local_changed = local_changed(local)
    is_remote_changed = remote_changed(local, remote)

    if is_local_changed and not is_remote_changed:
        return _Decision(Resolution.LOCAL_WINS, "only the local product changed since the last sync")
    if is_remote_changed and not is_local_changed:
        return _Decision(Resolution.REMOTE_WINS, "only the remote offer changed since the last sync")
    if not is_local_changed and not is_remote_changed:
        return _Decision(Resolution.IN_SYNC, "neither side changed since the last sync")

    if local.updated_at is None or remote.updated_at is None:
        return _Decision(Resolution.MANUAL, "both sides changed and a modification timestamp is missing")
    if local.updated_at > remote.updated_at:
        return _Decision(Resolution.LOCAL_WINS, "both sides changed; local write is newer")
    if remote.updated_at > local.updated_at:
        return _Decision(Resolution.REMOTE_WINS, "both sides changed; remote write is newer")
    return _Decision(Resolution.REMOTE_WINS, "both sides changed at the same instant; marketplace is authoritative")


def resolve(local: LocalVersion, remote: RemoteVersion) -> ConflictRecord:
    """Decide which version of one offer wins. Pure and deterministic."""
    decision = _decide(local, remote)
    return ConflictRecord(
        entity_id=local.entity_id,
        local_version=_iso(local.updated_at),
        remote_version=remote.revision or _iso(remote.updated_at),
        resolution=decision.resolution,
        reason=decision.reason,
        offer_id=remote.offer_id,
    )
