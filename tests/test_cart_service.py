"""Cart use cases against an in-memory database."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from recordshop.domain.errors import CartItemNotFound, RetryExhaustedError
from recordshop.domain.schemas import RecordIn
from recordshop.services.cart_service import CartService, clamp_quantity, fold_duplicates
from tests.conftest import sample_record


@pytest.fixture
def service(db):
    return CartService(db)


@pytest.fixture
def cart(service):
    return service.get_or_create_cart(user_id="user-1")


def record(**kwargs):
    return RecordIn.model_validate(sample_record(**kwargs))


class TestHelpers:
    @pytest.mark.parametrize("requested, available, expected", [(3, 5, 3), (9, 5, 5), (-2, 5, 0), (2, 0, 0)])
    def test_clamp_quantity(self, requested, available, expected):
        assert clamp_quantity(requested, available) == expected

    def test_fold_duplicates_keeps_max_in_first_seen_order(self):
        items = [MagicMock(discogs_id=1, quantity=1), MagicMock(discogs_id=2, quantity=5), MagicMock(discogs_id="1", quantity=3)]
        folded = fold_duplicates(items)
        assert [(i.discogs_id, i.quantity) for i in folded] == [("1", 3), (2, 5)]


class TestGetOrCreate:
    def test_user_cart_is_reused(self, service):
        first = service.get_or_create_cart(user_id="u")
        second = service.get_or_create_cart(user_id="u")
        assert first.id == second.id
        assert first.guest_id is None

    def test_guest_id_generated(self, service):
        cart = service.get_or_create_cart()
        assert len(cart.guest_id) == 32
        assert cart.user_id is None

    def test_known_guest_cart(self, service):
        cart = service.get_or_create_cart(guest_id="abc")
        assert service.get_or_create_cart(guest_id="abc").id == cart.id


class TestAddItem:
    def test_new_item_clamped_to_availability(self, service, cart):
        view = service.add_item(cart.id, record(quantity_available=4), quantity=10)
        assert view["items"][0]["quantity"] == 4
        assert view["item_count"] == 4

    def test_existing_item_quantity_summed_and_capped(self, service, cart):
        service.add_item(cart.id, record(quantity_available=4), quantity=3)
        view = service.add_item(cart.id, record(quantity_available=4), quantity=3)
        assert len(view["items"]) == 1
        assert view["items"][0]["quantity"] == 4

    def test_string_and_int_ids_are_the_same_item(self, service, cart):
        service.add_item(cart.id, record(listing_id=1001), quantity=1)
        view = service.add_item(cart.id, record(listing_id="1001"), quantity=1)
        assert len(view["items"]) == 1
        assert view["items"][0]["discogs_id"] == 1001
        assert view["items"][0]["quantity"] == 2

    def test_unavailable_record_rejected(self, service, cart):
        with pytest.raises(ValueError):
            service.add_item(cart.id, record(quantity_available=0))

    def test_missing_weight_defaults(self, service, cart):
        view = service.add_item(cart.id, record(weight=None))
        assert view["items"][0]["weight"] == 180

    def test_totals(self, service, cart):
        service.add_item(cart.id, record(listing_id=1, price="19.99"), quantity=2)
        view = service.add_item(cart.id, record(listing_id=2, price="5.00"), quantity=1)
        assert Decimal(view["total"]) == Decimal("44.98")

    def test_missing_cart(self, service):
        with pytest.raises(ValueError):
            service.add_item(999, record())


class TestUpdateAndRemove:
    def test_update_clamps(self, service, cart):
        service.add_item(cart.id, record(quantity_available=3))
        view = service.update_item_quantity(cart.id, "1001", 10)
        assert view["items"][0]["quantity"] == 3

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_removes(self, service, cart, quantity):
        service.add_item(cart.id, record())
        view = service.update_item_quantity(cart.id, 1001, quantity)
        assert view["items"] == []

    def test_update_unknown_item(self, service, cart):
        with pytest.raises(CartItemNotFound):
            service.update_item_quantity(cart.id, 42, 1)

    def test_remove_item(self, service, cart):
        service.add_item(cart.id, record(listing_id=1))
        service.add_item(cart.id, record(listing_id=2))
        view = service.remove_item(cart.id, 1)
        assert [i["discogs_id"] for i in view["items"]] == [2]

    def test_clear_cart(self, service, cart):
        service.add_item(cart.id, record(listing_id=1))
        service.add_item(cart.id, record(listing_id=2))
        assert service.clear_cart(cart.id)["items"] == []
        assert service.get_cart(cart.id)["items"] == []


class TestSyncLocalCart:
    def test_replaces_contents_and_counts_failures(self, service, cart):
        service.add_item(cart.id, record(listing_id=9))

        result = service.sync_local_cart(
            cart.id,
            [
                dict(sample_record(listing_id=1), quantity=1),
                dict(sample_record(listing_id="1"), quantity=3),
                {"id": 2, "price": "1.00"},
                dict(sample_record(listing_id=3, quantity_available=0), quantity=1),
            ],
        )

        items = result["cart"]["items"]
        assert [(i["discogs_id"], i["quantity"]) for i in items] == [(1, 3)]
        assert result["failed"] == 2


class TestRefreshAvailability:
    def test_updates_and_removes(self, db, cart):
        service = CartService(db)
        for listing_id in (1, 2, 3, 4):
            service.add_item(cart.id, record(listing_id=listing_id, quantity_available=5), quantity=3)

        live = {
            1: None,
            2: {"status": "Sold", "quantity_available": 1},
            3: {"status": "For Sale", "quantity_available": 1},
        }

        def get_record(listing_id, use_cache=True):
            assert use_cache is False
            if listing_id == 4:
                raise RetryExhaustedError("https://api.test", 503, 4)
            return live[listing_id]

        records = MagicMock()
        records.get_record.side_effect = get_record

        result = CartService(db, record_service=records).refresh_availability(cart.id)

        assert result["removed"] == 2
        assert result["updated"] == 1
        assert result["failed"] == 1
        items = {i["discogs_id"]: i for i in result["cart"]["items"]}
        assert set(items) == {3, 4}
        assert items[3]["quantity"] == 1
        assert items[3]["quantity_available"] == 1

    def test_requires_record_service(self, service, cart):
        with pytest.raises(RuntimeError):
            service.refresh_availability(cart.id)
