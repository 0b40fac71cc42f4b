import secrets
from decimal import Decimal
from typing import Any, Dict, Iterable, List, TypeVar

from pydantic import ValidationError
from requests import RequestException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recordshop.data.models.cart import CartModel
from recordshop.data.models.cart_item import CartItemModel
from recordshop.domain.errors import CartItemNotFound, InvalidExternalId, RetryExhaustedError
from recordshop.domain.ids import canonical_id
from recordshop.domain.schemas import RecordIn
from recordshop.repos.cart_repo import CartRepo
from recordshop.services.record_service import FOR_SALE, RecordService
from recordshop.utils.settings import DEFAULT_RECORD_WEIGHT
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def clamp_quantity(requested: int, available: int) -> int:
    """Ilosc zawsze w [0, available]."""
    return max(0, min(requested, available))


def fold_duplicates(items: Iterable[T], key=lambda i: i.discogs_id, quantity=lambda i: i.quantity) -> List[T]:
    """
    Ten sam produkt dwa razy na liscie -> zostaje pozycja z wieksza iloscia.
    Kolejnosc pierwszego wystapienia zachowana.
    """
    folded: Dict[str, T] = {}
    for item in items:
        k = canonical_id(key(item))
        if k not in folded or quantity(item) > quantity(folded[k]):
            folded[k] = item
    return list(folded.values())


def new_guest_id() -> str:
    return secrets.token_hex(16)


def serialize_cart(cart: CartModel, items: List[CartItemModel]) -> Dict[str, Any]:
    total = sum((Decimal(i.price) * i.quantity for i in items), Decimal("0.00"))
    return {
        "cart_id": cart.id,
        "user_id": cart.user_id,
        "guest_id": cart.guest_id,
        "items": [
            {
                "discogs_id": i.discogs_id,
                "title": i.title,
                "price": i.price,
                "quantity": i.quantity,
                "quantity_available": i.quantity_available,
                "condition": i.condition,
                "weight": i.weight,
                "images": i.images or [],
            }
            for i in items
        ],
        "item_count": sum(i.quantity for i in items),
        "total": total,
    }


def empty_cart(user_id: str | None = None, guest_id: str | None = None) -> Dict[str, Any]:
    """Widok pustego koszyka, ktory jeszcze nie istnieje w bazie."""
    return {
        "cart_id": None,
        "user_id": user_id,
        "guest_id": guest_id,
        "items": [],
        "item_count": 0,
        "total": Decimal("0.00"),
    }


class CartService:
    """
    Use case'y koszyka.
    Kazda zmiana ilosci jest przycinana do quantity_available, <= 0 usuwa pozycje.
    """

    def __init__(self, db: Session, record_service: RecordService | None = None):
        self.repo = CartRepo(db)
        self.record_service = record_service

    #query - odczyt
    def find_cart(self, user_id: str | None = None, guest_id: str | None = None) -> CartModel | None:
        if user_id:
            return self.repo.get_cart_by_user(user_id)
        if guest_id:
            return self.repo.get_cart_by_guest(guest_id)
        return None

    def get_cart(self, cart_id: int) -> Dict[str, Any] | None:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            return None
        return serialize_cart(cart, self.repo.get_cart_items(cart_id))

    def _require_cart(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise ValueError("Cart does not exist")
        return cart

    #commands
    def get_or_create_cart(self, user_id: str | None = None, guest_id: str | None = None) -> CartModel:
        if user_id:
            existing = self.repo.get_cart_by_user(user_id)
            new_cart = CartModel(user_id=user_id)
        else:
            guest_id = guest_id or new_guest_id()
            existing = self.repo.get_cart_by_guest(guest_id)
            new_cart = CartModel(guest_id=guest_id)

        if existing:
            return existing

        try:
            created = self.repo.create_cart(new_cart)
        except IntegrityError:
            # rownolegly request zdazyl utworzyc koszyk
            self.repo.rollback()
            created = self.repo.get_cart_by_user(user_id) if user_id else self.repo.get_cart_by_guest(guest_id)
            if created is None:
                raise

        logger.info(f"Created cart {created.id} for {'user ' + user_id if user_id else 'guest ' + guest_id}")
        return created

    def add_item(self, cart_id: int, record: RecordIn, quantity: int = 1) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        cart = self._require_cart(cart_id)
        existing = self.repo.get_cart_item(cart_id, record.id)

        if existing:
            new_quantity = clamp_quantity(existing.quantity + quantity, record.quantity_available)
            logger.info(
                f"Record {canonical_id(record.id)} already in cart {cart_id}, "
                f"quantity {existing.quantity} -> {new_quantity}"
            )
            if new_quantity <= 0:
                self.repo.delete_item(existing)
            else:
                existing.quantity = new_quantity
                existing.quantity_available = record.quantity_available
                self.repo.save_item(existing)
        else:
            new_quantity = clamp_quantity(quantity, record.quantity_available)
            if new_quantity <= 0:
                raise ValueError(f"Record {canonical_id(record.id)} is not available")
            logger.info(f"Adding record {canonical_id(record.id)} x{new_quantity} to cart {cart_id}")
            self.repo.save_item(
                CartItemModel(
                    cart_id=cart_id,
                    discogs_id=record.id,
                    title=record.title,
                    price=record.price,
                    quantity=new_quantity,
                    quantity_available=record.quantity_available,
                    condition=record.condition,
                    weight=record.weight or DEFAULT_RECORD_WEIGHT,
                    images=list(record.images),
                )
            )

        return serialize_cart(cart, self.repo.get_cart_items(cart_id))

    def update_item_quantity(self, cart_id: int, discogs_id: Any, quantity: int) -> Dict[str, Any]:
        cart = self._require_cart(cart_id)
        item = self.repo.get_cart_item(cart_id, discogs_id)
        if not item:
            raise CartItemNotFound(f"Record {canonical_id(discogs_id)} not found in cart")

        new_quantity = clamp_quantity(quantity, item.quantity_available)
        if new_quantity <= 0:
            logger.info(f"Quantity {quantity} for record {canonical_id(discogs_id)}, removing from cart {cart_id}")
            self.repo.delete_item(item)
        else:
            item.quantity = new_quantity
            self.repo.save_item(item)

        return serialize_cart(cart, self.repo.get_cart_items(cart_id))

    def remove_item(self, cart_id: int, discogs_id: Any) -> Dict[str, Any]:
        cart = self._require_cart(cart_id)
        item = self.repo.get_cart_item(cart_id, discogs_id)
        if not item:
            raise CartItemNotFound(f"Record {canonical_id(discogs_id)} not found in cart")

        logger.info(f"Removing record {canonical_id(discogs_id)} from cart {cart_id}")
        self.repo.delete_item(item)
        return serialize_cart(cart, self.repo.get_cart_items(cart_id))

    def clear_cart(self, cart_id: int) -> Dict[str, Any]:
        cart = self._require_cart(cart_id)
        removed = self.repo.clear_items(cart_id)
        logger.info(f"Cleared {removed} items from cart {cart_id}")
        return serialize_cart(cart, [])

    def sync_local_cart(self, cart_id: int, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Zastepuje zawartosc koszyka lista z przegladarki.
        Zla pozycja nie przerywa reszty - liczona w failed.
        """
        self._require_cart(cart_id)
        self.repo.clear_items(cart_id)

        parsed = []
        failed = 0
        for raw in items:
            try:
                record = RecordIn.model_validate(raw)
                parsed.append((record, int(raw.get("quantity") or 1)))
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                failed += 1
                logger.error(f"Skipping invalid cart item during sync: {e}")

        for record, quantity in fold_duplicates(parsed, key=lambda p: p[0].id, quantity=lambda p: p[1]):
            try:
                self.add_item(cart_id, record, quantity)
            except (ValueError, SQLAlchemyError) as e:
                self.repo.rollback()
                failed += 1
                logger.error(f"Failed to sync record {canonical_id(record.id)} into cart {cart_id}: {e}")

        logger.info(f"Synced {len(items)} items into cart {cart_id}, {failed} failed")
        return {"cart": self.get_cart(cart_id), "failed": failed}

    def refresh_availability(self, cart_id: int) -> Dict[str, Any]:
        """Sprawdza kazda pozycje z aktualnym stanem marketplace."""
        if self.record_service is None:
            raise RuntimeError("CartService needs a RecordService to refresh availability")

        self._require_cart(cart_id)
        updated = removed = failed = 0

        for item in self.repo.get_cart_items(cart_id):
            listing_id = item.discogs_id
            try:
                record = self.record_service.get_record(listing_id, use_cache=False)
                if record is None or record["status"] != FOR_SALE:
                    logger.info(f"Record {listing_id} no longer for sale, removing from cart {cart_id}")
                    self.repo.delete_item(item)
                    removed += 1
                    continue

                available = record["quantity_available"]
                new_quantity = clamp_quantity(item.quantity, available)
                if new_quantity <= 0:
                    self.repo.delete_item(item)
                    removed += 1
                elif available != item.quantity_available or new_quantity != item.quantity:
                    item.quantity_available = available
                    item.quantity = new_quantity
                    self.repo.save_item(item)
                    updated += 1
            except (RetryExhaustedError, RequestException, InvalidExternalId, SQLAlchemyError, KeyError) as e:
                self.repo.rollback()
                failed += 1
                logger.error(f"Could not refresh record {listing_id} in cart {cart_id}: {e}")

        return {"cart": self.get_cart(cart_id), "updated": updated, "removed": removed, "failed": failed}
