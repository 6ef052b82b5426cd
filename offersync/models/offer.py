# offer.py
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from offersync.database import Base
from offersync.core.enums import PublicationStatus, SyncStatus
from offersync.core.utils import utcnow


class OfferMirror(Base):
    """
    Local copy of one marketplace offer, linked 1:1 (or 1:0) to a Product.

    ``remote_revision`` / ``remote_updated_at`` hold the last remote version
    seen, used to skip unchanged offers and to reject out-of-order events.
    """
    __tablename__ = "offer_mirrors"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), unique=True, nullable=True, index=True)
    external_offer_id = Column(String(100), unique=True, nullable=True, index=True)

    title = Column(String(500))
    stock_quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(12, 2))
    currency = Column(String(3))
    publication_status = Column(String(20), nullable=False, default=PublicationStatus.INACTIVE.value)

    remote_revision = Column(String(100))
    remote_updated_at = Column(DateTime)
    last_synced_at = Column(DateTime, index=True)
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value, index=True)
    sync_error = Column(Text)

    version = Column(Integer, nullable=False, default=1)

    product = relationship("Product", back_populates="offer", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    @property
    def version_marker(self):
        """Same form as RemoteOffer.version_marker, for skip-unchanged and CAS checks."""
        if self.remote_revision:
            return self.remote_revision
        if self.remote_updated_at:
            return self.remote_updated_at.isoformat()
        return None

    def __repr__(self):
        return (f"<OfferMirror(id={self.id}, external_offer_id={self.external_offer_id}, "
                f"product_id={self.product_id}, stock={self.stock_quantity}, sync_status={self.sync_status})>")
