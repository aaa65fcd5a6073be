"""
Test suite for the amortization calculator

Installments, per-month interest and principal split, and the final-month
adjustment that absorbs rounding drift. All financial math must be exact.
"""

import pytest
from decimal import Decimal

from loan_servicing.amortization import (
    AmortizationResult, ScheduleEntry, calculate_monthly_installment,
    generate_schedule, monthly_rate
)
from loan_servicing.currency import Currency
from loan_servicing.errors import ValidationError


class TestMonthlyInstallment:
    """Test the closed-form installment"""

    def test_standard_loan(self):
        """100,000 at 12% over 12 months"""
        assert calculate_monthly_installment(100000, 12, 12) == Decimal('8884.88')

    def test_zero_rate_divides_evenly(self):
        assert calculate_monthly_installment(120000, 0, 24) == Decimal('5000.00')

    def test_zero_rate_rounds_half_up(self):
        assert calculate_monthly_installment(100, 0, 3) == Decimal('33.33')

    def test_string_inputs(self):
        """Decimal strings are accepted anywhere a number is"""
        assert calculate_monthly_installment("100000", "12", "12") == Decimal('8884.88')

    def test_float_rate_is_not_binary_expanded(self):
        assert calculate_monthly_installment(10000, 10.0, 5) == Decimal('2050.28')

    def test_monthly_rate(self):
        assert monthly_rate(Decimal('12')) == Decimal('0.01')

    def test_zero_decimal_currency(self):
        """JPY has no minor unit"""
        installment = calculate_monthly_installment(120000, 0, 7, currency=Currency.JPY)
        assert installment == Decimal('17143')


class TestScheduleGeneration:
    """Test full schedule generation"""

    def test_standard_schedule(self):
        result = generate_schedule(100000, 12, 12)

        assert isinstance(result, AmortizationResult)
        assert result.monthly_installment == Decimal('8884.88')
        assert len(result.schedule) == 12
        assert result.schedule[-1].balance == Decimal('0.00')
        assert result.total_interest == Decimal('6618.53')

    def test_first_month_split(self):
        """Interest is the rounded product of the opening balance and monthly rate"""
        first = generate_schedule(100000, 12, 12).schedule[0]

        assert first.month == 1
        assert first.interest == Decimal('1000.00')
        assert first.principal == Decimal('7884.88')
        assert first.balance == Decimal('92115.12')
        assert first.payment == Decimal('8884.88')

    def test_principal_sums_to_loan_amount(self):
        for principal, rate, months in [(100000, 12, 12), (10000, 10, 5),
                                        (1000, 12, 3), (250000, Decimal('7.25'), 360)]:
            result = generate_schedule(principal, rate, months)
            assert result.total_principal == Decimal(principal)
            assert result.schedule[-1].balance == Decimal('0.00')

    def test_total_interest_is_sum_of_entries(self):
        result = generate_schedule(10000, 10, 5)
        assert result.total_interest == sum(e.interest for e in result.schedule)
        assert result.total_interest == Decimal('251.37')

    def test_last_month_absorbs_rounding(self):
        """Final payment differs from the installment by the accumulated drift"""
        result = generate_schedule(1000, 12, 3)

        assert result.monthly_installment == Decimal('340.02')
        last = result.schedule[-1]
        assert last.principal == Decimal('336.66')
        assert last.interest == Decimal('3.37')
        assert last.payment == Decimal('340.03')

    def test_zero_rate_schedule(self):
        result = generate_schedule(120000, 0, 24)

        assert result.total_interest == Decimal('0.00')
        assert all(e.interest == Decimal('0.00') for e in result.schedule)
        assert all(e.principal == Decimal('5000.00') for e in result.schedule)

    def test_zero_rate_uneven_split(self):
        result = generate_schedule(100, 0, 3)
        assert [e.principal for e in result.schedule] == [
            Decimal('33.33'), Decimal('33.33'), Decimal('33.34')
        ]

    def test_balances_never_increase(self):
        result = generate_schedule(5000, 18, 48)
        balances = [e.balance for e in result.schedule]
        assert balances == sorted(balances, reverse=True)
        assert all(b >= 0 for b in balances)

    def test_tiny_loan_never_amortizes_past_zero(self):
        result = generate_schedule(Decimal('0.05'), 0, 12)

        assert all(e.balance >= 0 for e in result.schedule)
        assert result.total_principal == Decimal('0.05')

    def test_rate_below_working_precision_is_treated_as_zero(self):
        result = generate_schedule(1000, "0.00000000000000000000000001", 12)

        assert result.monthly_installment == Decimal('83.33')
        assert result.total_interest == Decimal('0.00')
        assert result.total_principal == Decimal('1000.00')
        assert result.schedule[-1].balance == Decimal('0.00')

    def test_single_month(self):
        result = generate_schedule(1000, 12, 1)

        assert len(result.schedule) == 1
        entry = result.schedule[0]
        assert entry.interest == Decimal('10.00')
        assert entry.principal == Decimal('1000.00')
        assert result.monthly_installment == Decimal('1010.00')

    def test_deterministic(self):
        assert generate_schedule(100000, 12, 12) == generate_schedule(100000, 12, 12)

    def test_to_dict_uses_decimal_strings(self):
        data = generate_schedule(100000, 12, 12).to_dict()

        assert data["monthlyInstallment"] == "8884.88"
        assert data["totalInterest"] == "6618.53"
        assert data["schedule"][0] == {
            "month": 1, "principal": "7884.88", "interest": "1000.00", "balance": "92115.12"
        }


class TestInputValidation:
    """Invalid inputs raise ValidationError, never a partial schedule"""

    @pytest.mark.parametrize("principal", [0, -100, "0"])
    def test_non_positive_principal(self, principal):
        with pytest.raises(ValidationError, match="principal"):
            generate_schedule(principal, 12, 12)

    @pytest.mark.parametrize("months", [0, -1, Decimal('12.5')])
    def test_invalid_tenure(self, months):
        with pytest.raises(ValidationError, match="tenure"):
            generate_schedule(1000, 12, months)

    def test_negative_rate(self):
        with pytest.raises(ValidationError, match="interest rate"):
            calculate_monthly_installment(1000, -1, 12)

    @pytest.mark.parametrize("value", [float('nan'), float('inf'), "NaN", "Infinity"])
    def test_non_finite_values(self, value):
        with pytest.raises(ValidationError):
            generate_schedule(value, 12, 12)
        with pytest.raises(ValidationError):
            generate_schedule(1000, value, 12)

    @pytest.mark.parametrize("value", ["abc", "", None, True])
    def test_non_numeric_values(self, value):
        with pytest.raises(ValidationError):
            generate_schedule(value, 12, 12)

    def test_principal_too_large_for_precision(self):
        with pytest.raises(ValidationError, match="too large"):
            generate_schedule("1e27", 12, 12)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            generate_schedule(-1, 12, 12)


class TestScheduleEntry:

    def test_entry_is_immutable(self):
        entry = ScheduleEntry(month=1, principal=Decimal('1'), interest=Decimal('0'),
                              balance=Decimal('0'))
        with pytest.raises(AttributeError):
            entry.balance = Decimal('5')
