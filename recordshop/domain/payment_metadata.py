# recordshop/domain/payment_metadata.py
"""
Kontrakt metadanych platnosci.

Checkout puts two JSON-encoded strings into the payment metadata: ``items``
(the purchased records) and ``customer`` (buyer snapshot). They are the
authoritative record of what was bought, so they are parsed and validated
here once and everything downstream works on typed objects.
"""
import json
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from recordshop.domain.errors import MetadataParseError
from recordshop.domain.schemas import ExternalId


class PurchasedItem(BaseModel):
    id: ExternalId
    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    condition: str | None = None
    weight: int | None = None

    model_config = ConfigDict(extra="ignore")


class CustomerSnapshot(BaseModel):
    user_id: str | None = Field(None, validation_alias=AliasChoices("user_id", "userId"))
    guest_id: str | None = Field(None, validation_alias=AliasChoices("guest_id", "guestId"))
    email: str | None = None
    name: str | None = None
    address: Dict[str, Any] | None = None
    billing_address: Dict[str, Any] | None = Field(
        None, validation_alias=AliasChoices("billing_address", "billingAddress")
    )

    model_config = ConfigDict(extra="allow")

    def as_address(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"user_id", "guest_id", "billing_address"}, exclude_none=True)


class PaymentMetadata(BaseModel):
    items: List[PurchasedItem]
    customer: CustomerSnapshot
    session_id: str | None = None


def _decode(raw: Any, field: str) -> Any:
    if raw is None:
        raise MetadataParseError(f"Metadata field '{field}' is missing")
    if isinstance(raw, (list, dict)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MetadataParseError(f"Metadata field '{field}' is not valid JSON: {e}") from e


def parse_payment_metadata(metadata: Mapping[str, Any] | None) -> PaymentMetadata:
    if not metadata:
        raise MetadataParseError("Payment metadata is empty")

    items = _decode(metadata.get("items"), "items")
    customer = metadata.get("customer")
    customer = _decode(customer, "customer") if customer is not None else {}

    try:
        parsed = PaymentMetadata(
            items=items,
            customer=customer,
            session_id=metadata.get("session_id") or metadata.get("sessionId"),
        )
    except ValidationError as e:
        raise MetadataParseError(f"Invalid payment metadata: {e.error_count()} error(s): {e}") from e

    if not parsed.items:
        raise MetadataParseError("Payment metadata lists no items")
    return parsed
