from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from offersync.database import Base
from offersync.core.enums import OrderStatus
from offersync.core.utils import utcnow


class MarketplaceOrder(Base):
    """
    Order placed on the marketplace, recorded from order webhooks.

    ``stock_applied`` guards the stock decrement: it flips exactly once per order.
    """
    __tablename__ = "marketplace_orders"

    id = Column(Integer, primary_key=True)
    external_order_id = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.NEW.value, index=True)
    buyer_email = Column(String(255))
    buyer_login = Column(String(255))
    total_amount = Column(Numeric(12, 2))
    currency = Column(String(3))
    ordered_at = Column(DateTime)
    stock_applied = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    lines = relationship(
        "MarketplaceOrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MarketplaceOrderLine.id",
    )

    def __repr__(self) -> str:
        return f"<MarketplaceOrder(id={self.id}, external_order_id={self.external_order_id}, status={self.status})>"


class MarketplaceOrderLine(Base):
    __tablename__ = "marketplace_order_lines"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("marketplace_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    external_offer_id = Column(String(100), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2))

    order = relationship("MarketplaceOrder", back_populates="lines")
