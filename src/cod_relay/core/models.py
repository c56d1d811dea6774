"""
Database model for per-shop OAuth credentials and the order payload accepted from the storefront.
"""

import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from cod_relay.core.database import Base


class ShopSession(Base):
    """
    Represents the offline access token Shopify granted to one shop.

    Attributes:
        shop (str): Shop domain, e.g. "demo.myshopify.com".
        access_token (str): Offline Admin API access token for the shop.
        scope (str): Comma-separated scopes granted at install time.
        created_at (datetime): Timestamp of the first installation.
    """

    __tablename__ = "shop_sessions"

    shop: Mapped[str] = mapped_column(String, primary_key=True)
    access_token: Mapped[str] = mapped_column(String, nullable=False)
    scope: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=text("CURRENT_TIMESTAMP")
    )

    @property
    def scopes(self) -> list[str]:
        return [s for s in (self.scope or "").split(",") if s]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LineItem(_CamelModel):
    """A product variant, or a custom line when no variant is given."""

    variant_id: Optional[str] = Field(None, alias="variantId")
    title: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def check_variant_or_title(self) -> "LineItem":
        if not self.variant_id and not self.title:
            raise ValueError("line item needs a variantId or a title")
        return self


class Customer(_CamelModel):
    id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")


class ShippingAddress(_CamelModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None


class OrderRequest(_CamelModel):
    """
    Cash-on-delivery order submitted by the storefront through the app proxy.

    The shop is deliberately not part of the body: it is taken from the signed
    query string only.
    """

    line_items: List[LineItem] = Field(..., alias="lineItems", min_length=1)
    customer: Optional[Customer] = None
    shipping_address: Optional[ShippingAddress] = Field(None, alias="shippingAddress")
    note: Optional[str] = None
    cod_fee: Decimal = Field(Decimal("0"), alias="codFee", ge=0)

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "example": {
                "lineItems": [{"variantId": "gid://shopify/ProductVariant/1", "quantity": 2}],
                "customer": {"email": "buyer@example.com", "phone": "+15555550100"},
                "shippingAddress": {
                    "firstName": "Ada",
                    "lastName": "Lovelace",
                    "address1": "1 Main St",
                    "city": "Springfield",
                    "country": "US",
                    "zip": "12345",
                },
                "note": "Call before delivery",
                "codFee": "2.50",
            }
        },
    )
