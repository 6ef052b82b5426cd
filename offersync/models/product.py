"""
Local catalog product.

A product is the seller-side source of the listing data pushed to the
marketplace. Stock changes arrive from two writers (sync strategies and
webhook handlers), so every write goes through the ``version`` column.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text
from sqlalchemy.orm import relationship

from offersync.database import Base
from offersync.core.enums import ProductStatus
from offersync.core.utils import utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    sku = Column(String(100), unique=True, nullable=False)
    title = Column(String(500))
    description = Column(Text)
    category_id = Column(String(100))
    price = Column(Numeric(12, 2))
    currency = Column(String(3), nullable=False, default="PLN")
    stock_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ProductStatus.DRAFT.value, index=True)

    version = Column(Integer, nullable=False, default=1)

    offer = relationship("OfferMirror", back_populates="product", uselist=False, lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku={self.sku}, stock={self.stock_quantity})>"
