"""Unit tests for snapshot-based currency conversion."""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from gross_to_net.calculators.currency import CurrencyConverter, ExchangeRateTable
from gross_to_net.calculators.types import WarningCode

USD = uuid4()
EUR = uuid4()
GBP = uuid4()


class TestExchangeRateTable:
    """Test rate lookup against captured snapshots."""

    def test_direct_rate(self):
        table = ExchangeRateTable({(EUR, USD): Decimal("1.1")})

        assert table.get_rate(EUR, USD) == Decimal("1.1")

    def test_inverse_rate_is_derived(self):
        """Only EUR->USD captured; USD->EUR is 1 / rate."""
        table = ExchangeRateTable({(EUR, USD): Decimal("1.25")})

        assert table.get_rate(USD, EUR) == Decimal("0.8")

    def test_direct_rate_wins_over_inverse(self):
        table = ExchangeRateTable(
            {(EUR, USD): Decimal("1.1"), (USD, EUR): Decimal("0.95")}
        )

        assert table.get_rate(USD, EUR) == Decimal("0.95")

    def test_same_currency_is_one(self):
        assert ExchangeRateTable().get_rate(USD, USD) == Decimal("1")

    def test_missing_pair_is_none(self):
        table = ExchangeRateTable({(EUR, USD): Decimal("1.1")})

        assert table.get_rate(GBP, USD) is None

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValueError):
            ExchangeRateTable({(EUR, USD): Decimal("0")})

    def test_from_snapshots(self):
        snapshots = [
            SimpleNamespace(from_currency_id=EUR, to_currency_id=USD, rate=Decimal("1.10000000")),
            SimpleNamespace(from_currency_id=GBP, to_currency_id=USD, rate=1.27),
        ]

        table = ExchangeRateTable.from_snapshots(snapshots)

        assert len(table) == 2
        assert table.get_rate(GBP, USD) == Decimal("1.27")


class TestCurrencyConverter:
    """Test conversion into the run's local currency."""

    def test_converts_with_snapshot_rate(self):
        """1000 EUR at 1.1 is 1100 USD."""
        converter = CurrencyConverter(USD, ExchangeRateTable({(EUR, USD): Decimal("1.1")}))

        result = converter.convert(Decimal("1000"), EUR)

        assert result.local_amount == Decimal("1100.0")
        assert result.exchange_rate_used == Decimal("1.1")
        assert result.was_converted is True
        assert result.original_amount == Decimal("1000")
        assert result.original_currency_id == EUR
        assert converter.drain_warnings() == []

    def test_local_currency_passes_through(self):
        converter = CurrencyConverter(USD, ExchangeRateTable())

        result = converter.convert(Decimal("250.00"), USD)

        assert result.local_amount == Decimal("250.00")
        assert result.was_converted is False
        assert result.missing_rate is False

    def test_no_currency_passes_through(self):
        converter = CurrencyConverter(USD, ExchangeRateTable())

        result = converter.convert(Decimal("250.00"), None)

        assert result.was_converted is False
        assert result.missing_rate is False

    def test_missing_rate_passes_through_with_warning(self):
        """A missing rate keeps the original amount and raises a warning."""
        converter = CurrencyConverter(USD, ExchangeRateTable())

        result = converter.convert(Decimal("1000"), EUR)

        assert result.local_amount == Decimal("1000")
        assert result.was_converted is False
        assert result.missing_rate is True

        warnings = converter.drain_warnings()
        assert len(warnings) == 1
        assert warnings[0].code == WarningCode.MISSING_EXCHANGE_RATE
        assert warnings[0].context["from_currency_id"] == str(EUR)

    def test_drain_clears_warnings(self):
        converter = CurrencyConverter(USD, ExchangeRateTable())
        converter.convert(Decimal("1"), EUR)

        assert len(converter.drain_warnings()) == 1
        assert converter.drain_warnings() == []
