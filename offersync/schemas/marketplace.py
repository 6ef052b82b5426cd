"""
Schemas for marketplace API payloads.

Remote JSON is parsed into these models at the client boundary so the sync
engine only ever sees typed offers and orders. Nested wire shapes
(``sellingMode.price``, ``publication.status``, ``external.id``) are
flattened on the way in.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from offersync.core.utils import to_naive_utc
from offersync.schemas.base import BaseSchema


class Money(BaseSchema):
    amount: Decimal
    currency: str

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount(cls, v):
        if v is None or v == '':
            raise ValueError('Amount is required')
        try:
            return Decimal(str(v))
        except Exception:
            raise ValueError(f'Amount must be a valid number, got: {v}')

    @field_validator('currency')
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.strip().upper()


class RemoteOfferStock(BaseSchema):
    available: int = 0
    reserved: int = 0


class RemoteOffer(BaseSchema):
    id: str
    name: Optional[str] = None
    price: Optional[Money] = None
    stock: RemoteOfferStock = Field(default_factory=RemoteOfferStock)
    publication_status: Optional[str] = None
    external_id: Optional[str] = None
    category_id: Optional[str] = None
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    revision: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def flatten_wire_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        selling_mode = data.pop('sellingMode', None)
        if isinstance(selling_mode, dict) and 'price' not in data:
            data['price'] = selling_mode.get('price')

        publication = data.pop('publication', None)
        if isinstance(publication, dict) and 'publication_status' not in data:
            data['publication_status'] = publication.get('status')

        external = data.pop('external', None)
        if isinstance(external, dict) and 'external_id' not in data:
            data['external_id'] = external.get('id')

        category = data.pop('category', None)
        if isinstance(category, dict) and 'category_id' not in data:
            data['category_id'] = category.get('id')

        stock = data.get('stock')
        if isinstance(stock, (int, str)):
            data['stock'] = {'available': stock}
        elif stock is None:
            for key in ('stockQuantity', 'quantity'):
                if data.get(key) is not None:
                    data['stock'] = {'available': data[key]}
                    break

        return data

    @field_validator('id', 'revision', 'external_id', 'category_id', mode='before')
    @classmethod
    def coerce_identifier(cls, v):
        return None if v is None else str(v)

    @field_validator('updated_at')
    @classmethod
    def normalise_updated_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @property
    def stock_quantity(self) -> int:
        return self.stock.available

    @property
    def amount(self) -> Optional[Decimal]:
        return self.price.amount if self.price else None

    @property
    def currency(self) -> Optional[str]:
        return self.price.currency if self.price else None

    @property
    def version_marker(self) -> Optional[str]:
        """Revision token when the marketplace sends one, otherwise the update timestamp."""
        if self.revision:
            return self.revision
        if self.updated_at:
            return self.updated_at.isoformat()
        return None


class RemoteOfferPage(BaseSchema):
    items: List[RemoteOffer] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")


class OfferReference(BaseSchema):
    id: str

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        return str(v)


class RemoteLineItem(BaseSchema):
    offer: OfferReference
    quantity: int = 1
    price: Optional[Money] = None

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError('Line item quantity must be positive')
        return v


class RemoteBuyer(BaseSchema):
    email: Optional[str] = None
    login: Optional[str] = None


class RemoteOrder(BaseSchema):
    id: str
    status: Optional[str] = None
    buyer: Optional[RemoteBuyer] = None
    line_items: List[RemoteLineItem] = Field(default_factory=list, alias="lineItems")
    total_price: Optional[Money] = Field(default=None, alias="totalPrice")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator('created_at')
    @classmethod
    def normalise_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


def offer_payload_from_product(product, default_currency: str) -> Dict[str, Any]:
    """Build the create/update body for a local product."""
    currency = (product.currency or default_currency).upper()
    return {
        "name": product.title,
        "external": {"id": product.sku},
        "category": {"id": product.category_id} if product.category_id else None,
        "sellingMode": {
            "price": {
                "amount": str(product.price) if product.price is not None else None,
                "currency": currency,
            }
        },
        "stock": {"available": product.stock_quantity},
        "description": product.description,
    }
