from __future__ import annotations
from decimal import Decimal
import pytest
from stac.services.money import InvalidAmount, to_cents, from_cents, format_money, format_signed


@pytest.mark.parametrize("raw,cents", [
    ("150", 15000),
    ("150.5", 15050),
    ("0.015", 2),        # half-up
    ("₹1,000.00", 100000),
    (" 1,000.00 ", 100000),
    ("₹25", 2500),
    (Decimal("12.34"), 1234),
    (7, 700),
    (0.1, 10),
])
def test_to_cents(raw, cents):
    assert to_cents(raw) == cents


@pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity", "$5", "€5"])
def test_to_cents_rejects_garbage(raw):
    with pytest.raises(InvalidAmount):
        to_cents(raw)


def test_from_cents_has_two_places():
    assert from_cents(5000) == Decimal("50.00")
    assert str(from_cents(5)) == "0.05"
    assert str(from_cents(-1999)) == "-19.99"


def test_format_money():
    assert format_money(1234567, "$") == "$12,345.67"
    assert format_money(-500, "$") == "$5.00"
    assert format_signed(500, "$") == "+$5.00"
    assert format_signed(-500, "$") == "-$5.00"
    assert format_signed(0, "$") == "+$0.00"


def test_room_ids_and_usernames():
    from stac.services.room_ids import generate_room_id, is_valid_room_id, normalize_username
    rid = generate_room_id()
    assert is_valid_room_id(rid)
    assert not is_valid_room_id("ABC123")
    assert not is_valid_room_id("abc12")
    assert normalize_username("  @Alice ") == "alice"


def test_to_cents_strips_only_the_configured_symbol(monkeypatch):
    from stac.config import settings
    monkeypatch.setattr(settings, "currency_symbol", "$")
    assert to_cents("$1,000.50") == 100050
    with pytest.raises(InvalidAmount):
        to_cents("₹5")
