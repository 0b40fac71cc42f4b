# recordshop/domain/ids.py
"""
Identyfikatory produktow z marketplace.

Discogs listing ids are large integers. They are kept as Python ``int`` in
memory, as a canonical decimal string in the database and compared only
through ``canonical_id`` so an int never gets compared to a str (or a float).
"""
from decimal import Decimal
from typing import Any

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from recordshop.domain.errors import InvalidExternalId


def canonical_id(value: Any) -> str:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidExternalId(f"Unsupported external id type: {type(value).__name__}")

    if isinstance(value, int):
        number = value
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise InvalidExternalId(f"External id must be integral: {value}")
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise InvalidExternalId(f"External id must contain digits only: {value!r}")
        number = int(text)
    else:
        raise InvalidExternalId(f"Unsupported external id type: {type(value).__name__}")

    if number < 0:
        raise InvalidExternalId(f"External id must not be negative: {number}")

    return str(number)


def parse_external_id(value: Any) -> int:
    return int(canonical_id(value))


class ExternalIdType(TypeDecorator):
    """Kolumna z id marketplace - zapis jako string, odczyt jako int."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return canonical_id(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
