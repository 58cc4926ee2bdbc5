"""Gross-to-net calculation components."""

from gross_to_net.calculators.benefits import BenefitsCalculator
from gross_to_net.calculators.compensation import CompensationAggregator, normalize_to_frequency
from gross_to_net.calculators.currency import CurrencyConverter, ExchangeRateTable
from gross_to_net.calculators.engine import GrossToNetEngine, RunContext, UnassignedPayGroupError
from gross_to_net.calculators.proration import apply_proration, calculate_proration_factor
from gross_to_net.calculators.statutory import StatutoryCalculator, StatutoryCatalogError

__all__ = [
    "BenefitsCalculator",
    "CompensationAggregator",
    "CurrencyConverter",
    "ExchangeRateTable",
    "GrossToNetEngine",
    "RunContext",
    "StatutoryCalculator",
    "StatutoryCatalogError",
    "UnassignedPayGroupError",
    "apply_proration",
    "calculate_proration_factor",
    "normalize_to_frequency",
]
