"""Conversion to the run's local currency against a frozen rate snapshot.

Rates come from ExchangeRateSnapshot rows captured while the run was in
draft. There is no live lookup. When only A->B is captured, B->A is derived
as 1 / rate.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from gross_to_net.calculators.money import ZERO, to_decimal
from gross_to_net.calculators.types import CalculationWarning, ConversionResult, WarningCode

logger = logging.getLogger(__name__)

ONE = Decimal("1")


class ExchangeRateTable:
    """Snapshot rates keyed by ordered (from_currency_id, to_currency_id)."""

    def __init__(self, rates: dict[tuple[UUID, UUID], Decimal] | None = None):
        self._rates: dict[tuple[UUID, UUID], Decimal] = {}
        for (from_id, to_id), rate in (rates or {}).items():
            self.add(from_id, to_id, rate)

    @classmethod
    def from_snapshots(cls, snapshots: Iterable) -> ExchangeRateTable:
        """Build a table from ExchangeRateSnapshot rows."""
        table = cls()
        for snap in snapshots:
            table.add(snap.from_currency_id, snap.to_currency_id, to_decimal(snap.rate))
        return table

    def add(self, from_id: UUID, to_id: UUID, rate: Decimal) -> None:
        if rate <= ZERO:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        self._rates[(from_id, to_id)] = rate

    def get_rate(self, from_id: UUID, to_id: UUID) -> Decimal | None:
        """Return the direct rate, else the derived inverse, else None."""
        if from_id == to_id:
            return ONE
        direct = self._rates.get((from_id, to_id))
        if direct is not None:
            return direct
        inverse = self._rates.get((to_id, from_id))
        if inverse is not None:
            return ONE / inverse
        return None

    def __len__(self) -> int:
        return len(self._rates)


class CurrencyConverter:
    """Convert amounts into one local currency, collecting warnings on misses."""

    def __init__(self, local_currency_id: UUID | None, rates: ExchangeRateTable):
        self.local_currency_id = local_currency_id
        self.rates = rates
        self.warnings: list[CalculationWarning] = []

    def convert(self, amount: Decimal, from_currency_id: UUID | None) -> ConversionResult:
        """Convert amount from a source currency to the local currency (unrounded)."""
        if (
            from_currency_id is None
            or self.local_currency_id is None
            or from_currency_id == self.local_currency_id
        ):
            return ConversionResult(
                local_amount=amount,
                exchange_rate_used=None,
                was_converted=False,
                original_amount=amount,
                original_currency_id=from_currency_id,
            )

        rate = self.rates.get_rate(from_currency_id, self.local_currency_id)
        if rate is None:
            logger.warning(
                "No snapshot rate %s -> %s; passing %s through unconverted",
                from_currency_id,
                self.local_currency_id,
                amount,
            )
            self.warnings.append(
                CalculationWarning(
                    code=WarningCode.MISSING_EXCHANGE_RATE,
                    message="No exchange rate captured for currency pair; amount not converted",
                    context={
                        "from_currency_id": str(from_currency_id),
                        "to_currency_id": str(self.local_currency_id),
                    },
                )
            )
            return ConversionResult(
                local_amount=amount,
                exchange_rate_used=None,
                was_converted=False,
                original_amount=amount,
                original_currency_id=from_currency_id,
                missing_rate=True,
            )

        return ConversionResult(
            local_amount=amount * rate,
            exchange_rate_used=rate,
            was_converted=True,
            original_amount=amount,
            original_currency_id=from_currency_id,
        )

    def drain_warnings(self) -> list[CalculationWarning]:
        """Return and clear the warnings collected so far."""
        warnings, self.warnings = self.warnings, []
        return warnings
