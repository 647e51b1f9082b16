from __future__ import annotations

import pytest

from dbforge.domain.naming import check_name, is_valid_name


@pytest.mark.parametrize("name", ["orders-db", "abc", "a1b", "x" * 63])
def test_valid_names(name: str) -> None:
    assert is_valid_name(name)
    assert check_name(name) == name


@pytest.mark.parametrize(
    "name",
    ["ab", "1orders", "Orders", "orders-", "orders--db", "orders_db", "x" * 64, ""],
)
def test_invalid_names(name: str) -> None:
    assert not is_valid_name(name)
    with pytest.raises(ValueError):
        check_name(name)
