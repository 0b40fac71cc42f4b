"""External id normalisation."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from recordshop.domain.errors import InvalidExternalId
from recordshop.domain.ids import canonical_id, parse_external_id
from recordshop.domain.schemas import InventoryUpdateIn


class TestCanonicalId:
    def test_int_and_digit_string_are_equal(self):
        assert canonical_id(123456789) == canonical_id("123456789") == "123456789"

    def test_whitespace_and_leading_zeros(self):
        assert canonical_id(" 0042 ") == "42"

    def test_large_ids_keep_precision(self):
        big = 2 ** 64 + 1
        assert canonical_id(big) == str(big)
        assert parse_external_id(str(big)) == big

    def test_integral_decimal(self):
        assert canonical_id(Decimal("77")) == "77"

    @pytest.mark.parametrize("value", [1.0, True, -5, "", "12a", "1.5", "²", "١٢", Decimal("1.5"), None, [1]])
    def test_rejects(self, value):
        with pytest.raises(InvalidExternalId):
            canonical_id(value)


class TestWireFormat:
    def test_accepts_string_and_serialises_as_string(self):
        payload = InventoryUpdateIn(listing_id="3000000001", quantity=2)
        assert payload.listing_id == 3000000001
        assert payload.model_dump(mode="json")["listing_id"] == "3000000001"

    def test_invalid_id_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            InventoryUpdateIn(listing_id="abc")
