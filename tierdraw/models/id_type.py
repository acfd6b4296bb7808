from typing import Optional

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class BigUint(TypeDecorator):
    """Unsigned integer of up to 256 bits persisted as a decimal string.

    Token amounts in base units and random words routinely exceed the range of
    ``BIGINT`` (and SQLite's ``REAL`` coercion would lose precision), so the
    value is stored as text and converted back to ``int`` on load.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        value = int(value)
        if value < 0:
            raise ValueError("BigUint columns cannot store negative values")
        if value.bit_length() > 256:
            raise ValueError("BigUint columns hold at most 256-bit values")
        return str(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)


AMOUNT_TYPE = BigUint()
