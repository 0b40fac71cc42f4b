"""Shipping tiers and batched quotes."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from recordshop.services.shipping_service import (
    LOCAL_PICKUP,
    SMARTPOST,
    ShippingService,
    calculate_shipping_cost,
)


class TestCalculateShippingCost:
    @pytest.mark.parametrize(
        "weight, country, method, expected",
        [
            (500, "Estonia", SMARTPOST, "2.99"),
            (500, "EE", LOCAL_PICKUP, "0.00"),
            (1500, "Germany", SMARTPOST, "15.00"),
            (2500, "fr", SMARTPOST, "18.00"),
            (4000, "Poland", SMARTPOST, "24.00"),
            (9000, "Spain", SMARTPOST, "29.00"),
            (1000, "Japan", SMARTPOST, "25.00"),
            (4000, "USA", SMARTPOST, "30.00"),
            (6000, "Brazil", SMARTPOST, "55.00"),
        ],
    )
    def test_tiers(self, weight, country, method, expected):
        assert calculate_shipping_cost(weight, country, method) == Decimal(expected)

    def test_missing_weight_defaults(self):
        assert calculate_shipping_cost(None, "Germany") == Decimal("15.00")
        assert calculate_shipping_cost(0, "Japan") == Decimal("25.00")


class TestShippingService:
    def test_quote_many_batches(self, cache):
        service = ShippingService(cache, max_batch_size=2, max_wait_time=10)
        batch = MagicMock(wraps=service._quote_batch)
        service.batch.batch_fn = batch
        quotes = service.quote_many([1000, 2500, 4000, 6000, 1000], "Germany")

        assert quotes == [Decimal("15.00"), Decimal("18.00"), Decimal("24.00"), Decimal("29.00"), Decimal("15.00")]
        assert batch.call_count == 3

    def test_quotes_are_cached(self, cache):
        service = ShippingService(cache)
        service.quote_many([1000], "Germany")
        assert cache.get("shipping:germany:1000:ITELLA_SMARTPOST") == "15.00"

        cache.set("shipping:germany:1000:ITELLA_SMARTPOST", "99.00", 60)
        assert service.quote_many([1000], "Germany") == [Decimal("99.00")]

    def test_unknown_method(self, cache):
        with pytest.raises(ValueError):
            ShippingService(cache).quote(100, "Estonia", "PIGEON")

    def test_cart_shipping_uses_total_weight(self, cache):
        cart = {"items": [{"weight": 230, "quantity": 2}, {"weight": 180, "quantity": 1}]}
        result = ShippingService(cache).cart_shipping(cart, "Japan")
        assert result["weight"] == 640
        assert result["cost"] == Decimal("25.00")

    def test_empty_cart_is_free(self, cache):
        result = ShippingService(cache).cart_shipping({"items": []}, "Japan")
        assert result["cost"] == Decimal("0.00")
