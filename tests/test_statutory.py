"""Unit tests for statutory deductions."""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gross_to_net.calculators.money import round_to_cents
from gross_to_net.calculators.statutory import (
    StatutoryCalculator,
    StatutoryCatalogError,
    tax_on_cumulative,
    wage_base,
)
from gross_to_net.calculators.types import (
    DeductionTypeRule,
    PayFrequency,
    PreTaxDeductions,
    RateBand,
    StatutoryInput,
    StatutoryMethod,
    YTDBalances,
)

# Annual brackets: 0% to 12k, 20% to 50k, 40% above
PAYE_BANDS = [
    RateBand(Decimal("0"), Decimal("12000"), StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0")),
    RateBand(
        Decimal("12000"), Decimal("50000"), StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.20")
    ),
    RateBand(Decimal("50000"), None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.40")),
]


def make_rule(code, bands, is_bracketed=False) -> DeductionTypeRule:
    return DeductionTypeRule(
        deduction_type_id=uuid4(),
        code=code,
        name=code.replace("_", " ").title(),
        statutory_type="tax" if is_bracketed else "social",
        is_bracketed=is_bracketed,
        bands=bands,
    )


def make_input(gross, ytd=None, pre_tax=None, non_taxable="0", monday_count=4, age=None,
               frequency=PayFrequency.MONTHLY) -> StatutoryInput:
    return StatutoryInput(
        gross_pay=Decimal(gross),
        non_taxable=Decimal(non_taxable),
        pre_tax=pre_tax or PreTaxDeductions(),
        ytd=ytd or YTDBalances(),
        pay_frequency=frequency,
        monday_count=monday_count,
        employee_age=age,
    )


class TestTaxOnCumulative:
    """Test the annual bracket walk."""

    def test_zero_income(self):
        assert tax_on_cumulative(Decimal("0"), PAYE_BANDS) == Decimal("0")

    def test_within_first_bracket(self):
        assert tax_on_cumulative(Decimal("10000"), PAYE_BANDS) == Decimal("0")

    def test_spans_all_brackets(self):
        """38k at 20% plus 10k at 40%."""
        assert tax_on_cumulative(Decimal("60000"), PAYE_BANDS) == Decimal("11600")

    def test_band_order_does_not_matter(self):
        assert tax_on_cumulative(
            Decimal("60000"), list(reversed(PAYE_BANDS))
        ) == Decimal("11600")


class TestCumulativeTax:
    """Test cumulative PAYE against year-to-date balances."""

    def test_first_period_of_year(self):
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])

        result = calculator.calculate(make_input("20000.00"))

        item = result.items[0]
        assert item.method == StatutoryMethod.CUMULATIVE
        assert item.employee_amount == Decimal("1600.00")
        assert item.ytd_info.ytd_taxable_after == Decimal("20000.00")
        assert item.ytd_info.ytd_tax_after == Decimal("1600.00")
        assert result.income_tax == Decimal("1600.00")

    def test_tax_already_paid_is_deducted(self):
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])
        ytd = YTDBalances(ytd_taxable_income=Decimal("20000"), ytd_tax_paid=Decimal("1600"))

        result = calculator.calculate(make_input("10000.00", ytd=ytd))

        # tax(30000) = 3600, 1600 already withheld
        assert result.items[0].employee_amount == Decimal("2000.00")

    def test_overpaid_year_floors_at_zero(self):
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])
        ytd = YTDBalances(ytd_taxable_income=Decimal("20000"), ytd_tax_paid=Decimal("5000"))

        result = calculator.calculate(make_input("1000.00", ytd=ytd))

        assert result.items[0].employee_amount == Decimal("0")

    def test_twelve_periods_sum_to_annual_liability(self):
        """Withholding across a year equals the bracket tax on annual income."""
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])

        ytd_taxable = Decimal("0")
        ytd_tax = Decimal("0")
        for _ in range(12):
            result = calculator.calculate(
                make_input("5000.00", ytd=YTDBalances(ytd_taxable, ytd_tax))
            )
            ytd_taxable += result.taxable_income
            ytd_tax += result.income_tax

        assert ytd_tax == Decimal("11600.00")

    def test_fluctuating_income_still_matches_annual_liability(self):
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])
        monthly = [
            "1000.00", "9000.33", "0.00", "4321.17", "15000.00", "2500.50",
            "2500.50", "7777.77", "0.00", "3333.33", "12000.01", "999.99",
        ]

        ytd_taxable = Decimal("0")
        ytd_tax = Decimal("0")
        for amount in monthly:
            result = calculator.calculate(
                make_input(amount, ytd=YTDBalances(ytd_taxable, ytd_tax))
            )
            ytd_taxable += result.taxable_income
            ytd_tax += result.income_tax

        annual = sum(Decimal(a) for a in monthly)
        assert ytd_tax == round_to_cents(tax_on_cumulative(annual, PAYE_BANDS))

    def test_second_cumulative_type_rejected(self):
        """Two bracketed types would each net off the other's withholding."""
        flat = [
            RateBand(Decimal("0"), None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.10"))
        ]

        with pytest.raises(StatutoryCatalogError, match="PAYE, SURTAX"):
            StatutoryCalculator(
                [
                    make_rule("PAYE", flat, is_bracketed=True),
                    make_rule("SURTAX", flat, is_bracketed=True),
                ]
            )

    def test_band_types_beside_cumulative_keep_annual_liability(self):
        social = [
            RateBand(Decimal("0"), None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.05"))
        ]
        calculator = StatutoryCalculator(
            [make_rule("PAYE", PAYE_BANDS, is_bracketed=True), make_rule("SOCIAL", social)]
        )

        ytd_taxable = Decimal("0")
        ytd_tax = Decimal("0")
        social_total = Decimal("0")
        for _ in range(12):
            result = calculator.calculate(
                make_input("5000.00", ytd=YTDBalances(ytd_taxable, ytd_tax))
            )
            ytd_taxable += result.taxable_income
            ytd_tax += result.income_tax
            social_total += result.total_employee_deductions - result.income_tax

        assert ytd_tax == Decimal("11600.00")
        assert social_total == Decimal("3000.00")


class TestCumulativeTaxProperties:
    """Property-based checks on cumulative withholding."""

    @given(
        amounts=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("40000"), places=2),
            min_size=1,
            max_size=12,
        )
    )
    @settings(max_examples=100)
    def test_withholding_telescopes_to_annual_tax(self, amounts):
        """Any sequence of period incomes withholds the tax on their total."""
        calculator = StatutoryCalculator([make_rule("PAYE", PAYE_BANDS, is_bracketed=True)])

        ytd_taxable = Decimal("0")
        ytd_tax = Decimal("0")
        for amount in amounts:
            result = calculator.calculate(
                make_input(amount, ytd=YTDBalances(ytd_taxable, ytd_tax))
            )
            assert result.income_tax >= Decimal("0")
            ytd_taxable += result.taxable_income
            ytd_tax += result.income_tax

        assert ytd_tax == round_to_cents(tax_on_cumulative(sum(amounts), PAYE_BANDS))


class TestTaxableIncome:
    """Test the taxable income figure fed to statutory types."""

    def test_pre_tax_and_non_taxable_reduce_taxable(self):
        inp = make_input(
            "5000.00",
            non_taxable="200.00",
            pre_tax=PreTaxDeductions(savings=Decimal("250.00"), period_deductions=Decimal("50.00")),
        )

        assert inp.taxable_income == Decimal("4500.00")

    def test_taxable_income_floors_at_zero(self):
        inp = make_input("100.00", pre_tax=PreTaxDeductions(savings=Decimal("300.00")))

        assert inp.taxable_income == Decimal("0")


class TestBandMethods:
    """Test percentage, fixed, and per-Monday bands."""

    def test_flat_percentage(self):
        """5000 at 10% is 500."""
        band = RateBand(None, None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.10"))
        calculator = StatutoryCalculator([make_rule("FLAT", [band])])

        result = calculator.calculate(make_input("5000.00"))

        assert result.items[0].employee_amount == Decimal("500.00")
        assert result.total_employee_deductions == Decimal("500.00")
        # Non-bracketed types are not income tax
        assert result.income_tax == Decimal("0")

    def test_employee_and_employer_rates(self):
        band = RateBand(
            None,
            None,
            StatutoryMethod.PERCENTAGE,
            employee_rate=Decimal("0.062"),
            employer_rate=Decimal("0.062"),
        )
        calculator = StatutoryCalculator([make_rule("SOC_SEC", [band])])

        result = calculator.calculate(make_input("4123.45"))

        # 4123.45 x 0.062 = 255.6539
        assert result.items[0].employee_amount == Decimal("255.65")
        assert result.items[0].employer_amount == Decimal("255.65")
        assert result.total_employer_deductions == Decimal("255.65")

    def test_fixed_amounts(self):
        band = RateBand(
            None,
            None,
            StatutoryMethod.FIXED,
            fixed_amount=Decimal("12.50"),
            employer_fixed_amount=Decimal("20.00"),
        )
        calculator = StatutoryCalculator([make_rule("LEVY", [band])])

        result = calculator.calculate(make_input("5000.00"))

        assert result.items[0].employee_amount == Decimal("12.50")
        assert result.items[0].employer_amount == Decimal("20.00")

    def test_per_monday_uses_monday_count(self):
        band = RateBand(
            None,
            None,
            StatutoryMethod.PER_MONDAY,
            per_monday_amount=Decimal("3.25"),
            employer_per_monday_amount=Decimal("6.50"),
        )
        calculator = StatutoryCalculator([make_rule("NIS", [band])])

        result = calculator.calculate(make_input("5000.00", monday_count=5))

        assert result.items[0].method == StatutoryMethod.PER_MONDAY
        assert result.items[0].employee_amount == Decimal("16.25")
        assert result.items[0].employer_amount == Decimal("32.50")

    def test_income_band_selection(self):
        low = RateBand(Decimal("0"), Decimal("1000"), StatutoryMethod.FIXED, fixed_amount=Decimal("5"))
        high = RateBand(Decimal("1000.01"), None, StatutoryMethod.FIXED, fixed_amount=Decimal("25"))
        calculator = StatutoryCalculator([make_rule("LEVY", [high, low])])

        assert calculator.calculate(make_input("800.00")).items[0].employee_amount == Decimal("5.00")
        assert calculator.calculate(make_input("1800.00")).items[0].employee_amount == Decimal("25.00")

    def test_age_band_selection(self):
        under_60 = RateBand(
            None, None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.05"), max_age=59
        )
        over_60 = RateBand(
            None, None, StatutoryMethod.PERCENTAGE, employee_rate=Decimal("0.02"), min_age=60
        )
        calculator = StatutoryCalculator([make_rule("PENSION", [under_60, over_60])])

        assert calculator.calculate(make_input("1000.00", age=35)).items[0].employee_amount == Decimal("50.00")
        assert calculator.calculate(make_input("1000.00", age=64)).items[0].employee_amount == Decimal("20.00")

    def test_no_matching_band_skips_type(self):
        band = RateBand(Decimal("10000"), None, StatutoryMethod.FIXED, fixed_amount=Decimal("99"))
        calculator = StatutoryCalculator([make_rule("HIGH_EARNER", [band])])

        assert calculator.calculate(make_input("5000.00")).items == []

    def test_bands_filtered_by_pay_frequency(self):
        weekly = RateBand(
            None, None, StatutoryMethod.FIXED, fixed_amount=Decimal("5"), pay_frequency="weekly"
        )
        monthly = RateBand(
            None, None, StatutoryMethod.FIXED, fixed_amount=Decimal("20"), pay_frequency="monthly"
        )
        calculator = StatutoryCalculator([make_rule("LEVY", [weekly, monthly])])

        result = calculator.calculate(make_input("5000.00", frequency=PayFrequency.MONTHLY))

        assert result.items[0].employee_amount == Decimal("20.00")

    def test_fortnightly_bands_serve_biweekly_pay(self):
        fortnightly = RateBand(
            None, None, StatutoryMethod.FIXED, fixed_amount=Decimal("8"), pay_frequency="Fortnightly"
        )
        weekly = RateBand(
            None, None, StatutoryMethod.FIXED, fixed_amount=Decimal("4"), pay_frequency="weekly"
        )
        calculator = StatutoryCalculator([make_rule("LEVY", [fortnightly, weekly])])

        result = calculator.calculate(make_input("2000.00", frequency=PayFrequency.BIWEEKLY))

        assert len(result.items) == 1
        assert result.items[0].employee_amount == Decimal("8.00")

    def test_unrecognised_band_frequency_never_applies(self):
        band = RateBand(
            None, None, StatutoryMethod.FIXED, fixed_amount=Decimal("8"), pay_frequency="lunar"
        )
        calculator = StatutoryCalculator([make_rule("LEVY", [band])])

        assert calculator.calculate(make_input("2000.00")).items == []


class TestWageBase:
    """Test per-side wage-base ceilings."""

    def test_no_limit(self):
        assert wage_base(Decimal("5000"), None, Decimal("100000")) == Decimal("5000")

    def test_partially_under_limit(self):
        assert wage_base(Decimal("5000"), Decimal("50000"), Decimal("47000")) == Decimal("3000")

    def test_limit_exhausted(self):
        assert wage_base(Decimal("5000"), Decimal("50000"), Decimal("50000")) == Decimal("0")

    def test_each_side_capped_independently(self):
        band = RateBand(
            None,
            None,
            StatutoryMethod.PERCENTAGE,
            employee_rate=Decimal("0.10"),
            employer_rate=Decimal("0.10"),
            employee_wage_base_limit=Decimal("50000"),
            employer_wage_base_limit=Decimal("60000"),
        )
        calculator = StatutoryCalculator([make_rule("SOC_SEC", [band])])
        ytd = YTDBalances(ytd_taxable_income=Decimal("48000"))

        result = calculator.calculate(make_input("5000.00", ytd=ytd))

        assert result.items[0].employee_amount == Decimal("200.00")
        assert result.items[0].employer_amount == Decimal("500.00")
