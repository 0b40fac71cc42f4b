# recordshop/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from recordshop.data.models.cart import CartModel
from recordshop.data.models.cart_item import CartItemModel
from recordshop.domain.ids import canonical_id


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_cart_by_user(self, user_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == user_id)
        ).scalar_one_or_none()

    def get_cart_by_guest(self, guest_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.guest_id == guest_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def delete_cart(self, cart: CartModel) -> None:
        self.db.delete(cart)
        self.db.commit()

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: int, discogs_id) -> CartItemModel | None:
        #porownanie zawsze po kanonicznym stringu
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.discogs_id == canonical_id(discogs_id),
            )
        ).scalar_one_or_none()

    def save_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item: CartItemModel) -> None:
        self.db.delete(item)
        self.db.commit()

    def clear_items(self, cart_id: int) -> int:
        result = self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        self.db.commit()
        self.db.expire_all()
        return result.rowcount or 0

    def touch(self, cart: CartModel, when: datetime) -> None:
        cart.updated_at = when
        self.db.commit()

    def get_stale_guest_carts(self, older_than: datetime) -> list[CartModel]:
        return list(
            self.db.execute(
                select(CartModel).where(
                    CartModel.guest_id.is_not(None),
                    CartModel.updated_at < older_than,
                )
            ).scalars()
        )

    def rollback(self):
        self.db.rollback()
