from __future__ import annotations

import pytest

from bytehub.shared.ids import Snowflake, decode_hex


def test_parse_accepts_digit_strings_and_ints() -> None:
    assert Snowflake.parse("42") == Snowflake(42)
    assert Snowflake.parse(" 1234567890123 ") == Snowflake(1234567890123)
    assert Snowflake.parse(7) == Snowflake(7)
    assert str(Snowflake.parse("900")) == "900"


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "0", "-1", "12a", "1.5", "١٢", True, 0, 1 << 64],
)
def test_unparseable_ids_are_absent(raw: object) -> None:
    assert Snowflake.parse(raw) is None


def test_constructor_rejects_zero() -> None:
    with pytest.raises(ValueError):
        Snowflake(0)


def test_decode_hex_is_strict() -> None:
    assert decode_hex("00ff") == b"\x00\xff"
    assert decode_hex("0") is None
    assert decode_hex("zz") is None
    assert decode_hex("") is None
    assert decode_hex(None) is None
