import datetime as dt
from decimal import Decimal

from receiptscanner.utils.helpers import parse_iso_datetime, to_money, utcnow


def test_parse_iso_datetime_lowercase_z():
    value = "2023-05-06T12:00:00z"
    result = parse_iso_datetime(value)
    assert result == dt.datetime(2023, 5, 6, 12, 0, 0, tzinfo=dt.timezone.utc)


def test_parse_iso_datetime_invalid_returns_none():
    assert parse_iso_datetime("not-a-date") is None
    assert parse_iso_datetime(None) is None


def test_to_money_quantizes_aggregates():
    assert to_money(None) == Decimal("0.00")
    assert to_money(12.5) == Decimal("12.50")
    assert to_money(Decimal("3.456")) == Decimal("3.46")
    assert str(to_money(7)) == "7.00"


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
