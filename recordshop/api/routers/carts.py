# recordshop/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from recordshop.api.deps import get_record_service, get_shipping_service, get_user_id, require_user_id
from recordshop.data.database import get_db
from recordshop.data.models.cart import CartModel
from recordshop.domain.errors import CartItemNotFound
from recordshop.domain.ids import canonical_id
from recordshop.domain.schemas import (
    AddItemIn,
    CartOut,
    MergeIn,
    MergeOut,
    RefreshOut,
    ShippingOut,
    SyncCartIn,
    SyncOut,
    UpdateQuantityIn,
)
from recordshop.services.cart_merge_service import CartMergeService
from recordshop.services.cart_service import CartService, empty_cart
from recordshop.services.record_service import RecordService
from recordshop.services.shipping_service import SMARTPOST, ShippingService
from recordshop.utils.settings import GUEST_CART_COOKIE, GUEST_CART_TTL_DAYS
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/carts", tags=["carts"])

COOKIE_MAX_AGE = GUEST_CART_TTL_DAYS * 24 * 60 * 60


def current_cart(
    request: Request,
    response: Response,
    user_id: str | None = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> CartModel:
    """Koszyk uzytkownika albo goscia (cookie), tworzony przy pierwszym zapisie. Nowy gosc dostaje cookie."""
    if user_id:
        return CartService(db).get_or_create_cart(user_id=user_id)

    guest_id = request.cookies.get(GUEST_CART_COOKIE)
    cart = CartService(db).get_or_create_cart(guest_id=guest_id)
    if cart.guest_id != guest_id:
        response.set_cookie(
            GUEST_CART_COOKIE,
            cart.guest_id,
            max_age=COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
    return cart


def existing_cart(
    request: Request,
    user_id: str | None = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> CartModel | None:
    # odczyt niczego nie tworzy - brak koszyka to pusty widok
    return CartService(db).find_cart(user_id=user_id, guest_id=request.cookies.get(GUEST_CART_COOKIE))


def _empty_view(request: Request, user_id: str | None) -> dict:
    return empty_cart(user_id=user_id, guest_id=None if user_id else request.cookies.get(GUEST_CART_COOKIE))


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Failed to {action}: {e}")
    return HTTPException(status_code=500, detail=f"Failed to {action}, please try again")


@router.get("/", response_model=CartOut)
def get_cart(
    request: Request,
    cart: CartModel | None = Depends(existing_cart),
    user_id: str | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    if cart is None:
        return _empty_view(request, user_id)
    return CartService(db).get_cart(cart.id)


@router.post("/items", response_model=CartOut)
def add_item(payload: AddItemIn, cart: CartModel = Depends(current_cart), db: Session = Depends(get_db)):
    try:
        return CartService(db).add_item(cart.id, payload.item, payload.quantity)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("add item to cart", e)


@router.put("/items/{external_id}", response_model=CartOut)
def update_item(
    external_id: str,
    payload: UpdateQuantityIn,
    cart: CartModel | None = Depends(existing_cart),
    db: Session = Depends(get_db),
):
    try:
        if cart is None:
            raise CartItemNotFound(f"Record {canonical_id(external_id)} not found in cart")
        return CartService(db).update_item_quantity(cart.id, external_id, payload.quantity)
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("update cart item", e)


@router.delete("/items/{external_id}", response_model=CartOut)
def remove_item(external_id: str, cart: CartModel | None = Depends(existing_cart), db: Session = Depends(get_db)):
    try:
        if cart is None:
            raise CartItemNotFound(f"Record {canonical_id(external_id)} not found in cart")
        return CartService(db).remove_item(cart.id, external_id)
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("remove cart item", e)


@router.delete("/items", response_model=CartOut)
def clear_cart(
    request: Request,
    cart: CartModel | None = Depends(existing_cart),
    user_id: str | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    if cart is None:
        return _empty_view(request, user_id)
    try:
        return CartService(db).clear_cart(cart.id)
    except Exception as e:
        raise _server_error("clear cart", e)


@router.post("/sync", response_model=SyncOut)
def sync_cart(payload: SyncCartIn, cart: CartModel = Depends(current_cart), db: Session = Depends(get_db)):
    """Zastepuje koszyk lista z localStorage przegladarki."""
    try:
        return CartService(db).sync_local_cart(cart.id, payload.items)
    except Exception as e:
        raise _server_error("sync cart", e)


@router.post("/merge", response_model=MergeOut)
def merge_cart(
    request: Request,
    response: Response,
    payload: MergeIn | None = None,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """
    Po zalogowaniu: koszyk goscia (body albo cookie) laczony z koszykiem uzytkownika.
    Brak koszyka goscia -> merged=false, koszyk uzytkownika nietkniety.
    """
    guest_id = (payload.guest_id if payload else None) or request.cookies.get(GUEST_CART_COOKIE)
    if not guest_id:
        return MergeOut(merged=False)

    try:
        result = CartMergeService(db).merge_guest_cart_to_user_cart(guest_id, user_id)
    except Exception as e:
        raise _server_error("merge carts", e)

    if result is None:
        response.delete_cookie(GUEST_CART_COOKIE)
        return MergeOut(merged=False)
    # nieudane pozycje zostaja w koszyku goscia - cookie tez, do ponownej proby
    if not result.failed:
        response.delete_cookie(GUEST_CART_COOKIE)
    return MergeOut(merged=True, cart=result.cart, merged_items=result.merged_items, failed=result.failed)


@router.post("/refresh", response_model=RefreshOut)
def refresh_cart(
    request: Request,
    cart: CartModel | None = Depends(existing_cart),
    user_id: str | None = Depends(get_user_id),
    records: RecordService = Depends(get_record_service),
    db: Session = Depends(get_db),
):
    if cart is None:
        return {"cart": _empty_view(request, user_id), "updated": 0, "removed": 0, "failed": 0}
    try:
        return CartService(db, record_service=records).refresh_availability(cart.id)
    except Exception as e:
        raise _server_error("refresh cart", e)


@router.get("/shipping", response_model=ShippingOut)
def cart_shipping(
    request: Request,
    country: str = Query(..., min_length=2),
    method: str = Query(SMARTPOST),
    cart: CartModel | None = Depends(existing_cart),
    user_id: str | None = Depends(get_user_id),
    shipping: ShippingService = Depends(get_shipping_service),
    db: Session = Depends(get_db),
):
    view = CartService(db).get_cart(cart.id) if cart is not None else _empty_view(request, user_id)
    try:
        return shipping.cart_shipping(view, country, method)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("calculate shipping", e)
