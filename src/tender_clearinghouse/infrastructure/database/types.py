"""Portable column types.

    DecimalString  money stored as a canonical decimal string, so no backend
                   ever routes an amount through a float.
    UTCDateTime    timezone-aware timestamps; naive values coming back from
                   SQLite are tagged as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import DateTime, String
from sqlalchemy.types import TypeDecorator


class DecimalString(TypeDecorator):
    """Store ``Decimal`` values as strings, return them as ``Decimal``."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return None
        try:
            number = value if isinstance(value, Decimal) else Decimal(str(value))
        except InvalidOperation as err:
            raise ValueError(f"Not a decimal amount: {value!r}") from err
        if not number.is_finite():
            raise ValueError(f"Not a finite amount: {value!r}")
        return format(number.normalize(), "f")

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always hands back UTC-aware values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)
