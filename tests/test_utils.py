from decimal import Decimal

import pytest

from coffeecoin_ledger.utils import (
    format_ether,
    format_number,
    is_valid_ethereum_address,
    normalize_address,
    parse_int,
    wei_to_ether,
)


def test_is_valid_ethereum_address():
    assert is_valid_ethereum_address("0x" + "aB" * 20)
    assert is_valid_ethereum_address("ab" * 20)
    assert not is_valid_ethereum_address("0x" + "ab" * 19)
    assert not is_valid_ethereum_address("0x" + "zz" * 20)
    assert not is_valid_ethereum_address(None)
    assert not is_valid_ethereum_address("")


def test_normalize_address():
    assert normalize_address("AB" * 20) == "0x" + "ab" * 20
    assert normalize_address(None) == ""


def test_ether_formatting():
    assert wei_to_ether(10 ** 18) == Decimal(1)
    assert format_ether(10 ** 16) == "0.01"
    assert format_ether(5 * 10 ** 15) == "0.005"
    assert format_ether(0) == "0"


@pytest.mark.parametrize("raw,expected", [("42", 42), ("0x2a", 42), (7, 7), (None, 0), ("", 0)])
def test_parse_int(raw, expected):
    assert parse_int(raw) == expected


def test_format_number():
    assert format_number("1234567") == "1,234,567"
    assert format_number("n/a") == "n/a"
