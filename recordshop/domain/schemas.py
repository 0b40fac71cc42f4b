# recordshop/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from recordshop.domain.ids import parse_external_id

# int w pamieci, string w JSON (klienci JS gubia precyzje duzych liczb)
ExternalId = Annotated[
    int,
    BeforeValidator(parse_external_id),
    PlainSerializer(str, return_type=str, when_used="json"),
]


class RecordIn(BaseModel):
    """Snapshot rekordu przy dodawaniu do koszyka."""

    id: ExternalId
    title: str = Field(..., min_length=1, max_length=500)
    price: Decimal = Field(..., ge=0)
    quantity_available: int = Field(..., ge=0, description="Ile sztuk oferuje marketplace")
    condition: str | None = None
    weight: int | None = Field(None, gt=0, description="Waga w gramach")
    images: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class AddItemIn(BaseModel):
    item: RecordIn
    quantity: int = Field(1, gt=0)


class UpdateQuantityIn(BaseModel):
    # <= 0 usuwa produkt
    quantity: int


class SyncCartIn(BaseModel):
    """Pozycje z localStorage - walidowane pojedynczo w serwisie."""

    items: List[Dict[str, Any]]


class MergeIn(BaseModel):
    guest_id: str | None = Field(None, min_length=1, max_length=64)


class CartItemOut(BaseModel):
    discogs_id: ExternalId
    title: str
    price: Decimal
    quantity: int
    quantity_available: int
    condition: str | None = None
    weight: int
    images: List[str]


class CartOut(BaseModel):
    cart_id: int | None = None
    user_id: str | None = None
    guest_id: str | None = None
    items: List[CartItemOut]
    item_count: int
    total: Decimal


class SyncOut(BaseModel):
    cart: CartOut
    failed: int


class MergeOut(BaseModel):
    merged: bool
    cart: CartOut | None = None
    merged_items: int = 0
    failed: int = 0


class RefreshOut(BaseModel):
    cart: CartOut
    updated: int
    removed: int
    failed: int


class ShippingOut(BaseModel):
    country: str
    method: str
    weight: int
    cost: Decimal


class UserCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    email: str | None = Field(None, max_length=255)
    name: str | None = Field(None, max_length=100)


class UserRead(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderItemOut(BaseModel):
    discogs_id: ExternalId
    title: str
    price: Decimal
    quantity: int
    condition: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: str | None = None
    payment_id: str
    status: str
    total: Decimal
    email: str | None = None
    items: List[OrderItemOut]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InventoryUpdateIn(BaseModel):
    listing_id: ExternalId
    quantity: int = Field(1, gt=0)


class InventoryUpdateOut(BaseModel):
    success: bool
    listing_id: ExternalId
    quantity: int


class CacheClearIn(BaseModel):
    pattern: str = Field("*", min_length=1)


class CacheClearOut(BaseModel):
    cleared: int


class SellerConnectOut(BaseModel):
    oauth_token: str
    authorize_url: str


class SellerStatusOut(BaseModel):
    connected: bool
    username: str | None = None
    last_verified: datetime | None = None
