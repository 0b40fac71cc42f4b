# recordshop/services/cart_merge_service.py
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recordshop.data.models.cart import CartModel
from recordshop.data.models.cart_item import CartItemModel
from recordshop.domain.errors import InvalidExternalId
from recordshop.domain.ids import canonical_id
from recordshop.repos.cart_repo import CartRepo
from recordshop.services.cart_service import clamp_quantity, fold_duplicates, serialize_cart
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MergeResult:
    cart: Dict[str, Any]
    merged_items: int
    failed: int


def merged_quantity(user_quantity: int, guest_quantity: int, guest_available: int) -> int:
    # dostepnosc z koszyka goscia jest swiezsza - ona jest sufitem
    return clamp_quantity(user_quantity + guest_quantity, guest_available)


class CartMergeService:
    """
    Laczy koszyk goscia z koszykiem uzytkownika po zalogowaniu.

    Ponowne wywolanie po udanym merge'u to no-op: koszyk goscia juz nie
    istnieje, wiec pierwszy krok konczy sie "nothing to merge".
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    def merge_guest_cart_to_user_cart(self, guest_id: str, user_id: str) -> MergeResult | None:
        guest_cart = self.repo.get_cart_by_guest(guest_id)
        if not guest_cart or not guest_cart.items:
            logger.info(f"Nothing to merge for guest {guest_id}")
            return None

        user_cart = self.repo.get_cart_by_user(user_id)
        if user_cart is None:
            user_cart = self.repo.create_cart(CartModel(user_id=user_id))

        user_items = {canonical_id(i.discogs_id): i for i in self.repo.get_cart_items(user_cart.id)}
        guest_items = fold_duplicates(guest_cart.items)

        logger.info(
            f"Merging {len(guest_items)} guest items from cart {guest_cart.id} "
            f"into cart {user_cart.id} of user {user_id}"
        )

        merged = failed = 0
        done = set()
        for guest_item in guest_items:
            try:
                key = canonical_id(guest_item.discogs_id)
                existing = user_items.get(key)

                if existing is not None:
                    new_quantity = merged_quantity(existing.quantity, guest_item.quantity, guest_item.quantity_available)
                    logger.info(f"Record {key}: quantity {existing.quantity} + {guest_item.quantity} -> {new_quantity}")
                    if new_quantity <= 0:
                        self.repo.delete_item(existing)
                        user_items.pop(key)
                    else:
                        existing.quantity = new_quantity
                        existing.quantity_available = guest_item.quantity_available
                        self.repo.save_item(existing)
                else:
                    quantity = clamp_quantity(guest_item.quantity, guest_item.quantity_available)
                    if quantity <= 0:
                        logger.info(f"Record {key} unavailable, not copied to user cart")
                        done.add(key)
                        continue
                    # kopia 1:1, bez odpytywania marketplace
                    copy = CartItemModel(
                        cart_id=user_cart.id,
                        discogs_id=guest_item.discogs_id,
                        title=guest_item.title,
                        price=guest_item.price,
                        quantity=quantity,
                        quantity_available=guest_item.quantity_available,
                        condition=guest_item.condition,
                        weight=guest_item.weight,
                        images=list(guest_item.images or []),
                    )
                    user_items[key] = self.repo.save_item(copy)
                merged += 1
                done.add(key)
            except (SQLAlchemyError, InvalidExternalId, ValueError) as e:
                self.repo.rollback()
                failed += 1
                logger.error(f"Failed to merge guest item into cart {user_cart.id}: {e}")

        try:
            if failed:
                self._keep_failed_items(guest_cart, done)
            else:
                self.repo.delete_cart(guest_cart)
        except SQLAlchemyError as e:
            # sprzatanie nie cofa merge'a
            self.repo.rollback()
            logger.error(f"Merged, but failed to clean up guest cart {guest_cart.id}: {e}")

        cart = serialize_cart(user_cart, self.repo.get_cart_items(user_cart.id))
        return MergeResult(cart=cart, merged_items=merged, failed=failed)

    def _keep_failed_items(self, guest_cart: CartModel, done: set) -> None:
        """W koszyku goscia zostaja tylko pozycje, ktorych nie udalo sie przeniesc."""
        for item in self.repo.get_cart_items(guest_cart.id):
            if canonical_id(item.discogs_id) in done:
                self.repo.delete_item(item)
        logger.warning(f"Guest cart {guest_cart.id} kept with items that failed to merge")
