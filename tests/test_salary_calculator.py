"""
PayDesk - Salary Calculator Tests

Unit tests for pro-rating and net salary arithmetic.
"""

from decimal import Decimal

import pytest

from paydesk.services.salary_calculator import calculate_salary_breakdown, pro_rate
from paydesk.utils.error_handling import (
    ErrorCode,
    InvalidWorkingDaysException,
    ValidationException,
)


class TestProRating:
    """Test cases for pro-rating basic salary by days worked."""

    def test_full_month_keeps_basic(self):
        assert pro_rate(Decimal("50000"), 22, 22) == Decimal("50000.00")

    def test_partial_month_rounds_half_up(self):
        """50000 * 20 / 22 = 45454.5454... rounds to 45454.55."""
        assert pro_rate(Decimal("50000"), 22, 20) == Decimal("45454.55")

    def test_zero_days_worked(self):
        assert pro_rate(Decimal("50000"), 22, 0) == Decimal("0.00")

    @pytest.mark.parametrize("total,worked", [(0, 0), (22, 23), (22, -1)])
    def test_invalid_working_days(self, total, worked):
        with pytest.raises(InvalidWorkingDaysException) as exc_info:
            pro_rate(Decimal("50000"), total, worked)
        assert exc_info.value.code == ErrorCode.INVALID_WORKING_DAYS
        assert exc_info.value.status_code == 422


class TestSalaryBreakdown:
    """Test cases for calculate_salary_breakdown."""

    def test_net_salary_full_month(self):
        breakdown = calculate_salary_breakdown(
            Decimal("50000"), 22, 22,
            allowances={"hra": 20000},
            deductions={"tax": 5000},
        )

        assert breakdown.pro_rated_basic == Decimal("50000.00")
        assert breakdown.total_allowances == Decimal("20000.00")
        assert breakdown.total_deductions == Decimal("5000.00")
        assert breakdown.gross == Decimal("70000.00")
        assert breakdown.net == Decimal("65000.00")

    def test_net_salary_pro_rated(self):
        breakdown = calculate_salary_breakdown(
            "50000", 22, 20,
            allowances={"hra": "10000", "transport": "1600"},
            deductions={"pf": "1800", "tax": "2500"},
        )

        assert breakdown.pro_rated_basic == Decimal("45454.55")
        assert breakdown.net == Decimal("45454.55") + Decimal("11600") - Decimal("4300")

    def test_missing_components_are_zero(self):
        breakdown = calculate_salary_breakdown(Decimal("30000"), 20, 20)

        assert set(breakdown.allowances) == {"hra", "transport", "medical", "special", "other"}
        assert set(breakdown.deductions) == {"tax", "pf", "insurance", "other"}
        assert all(v == Decimal("0.00") for v in breakdown.allowances.values())
        assert breakdown.net == Decimal("30000.00")

    def test_net_salary_may_be_negative(self):
        """Deductions larger than gross produce a negative net, unclamped."""
        breakdown = calculate_salary_breakdown(
            Decimal("10000"), 20, 10,
            deductions={"tax": 8000},
        )

        assert breakdown.gross == Decimal("5000.00")
        assert breakdown.net == Decimal("-3000.00")

    def test_unknown_component_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            calculate_salary_breakdown(Decimal("10000"), 20, 20, allowances={"bonus": 500})
        assert exc_info.value.field == "allowances"
        assert "bonus" in exc_info.value.message

    def test_negative_component_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            calculate_salary_breakdown(Decimal("10000"), 20, 20, deductions={"pf": -1})
        assert exc_info.value.field == "deductions.pf"

    def test_negative_basic_rejected(self):
        with pytest.raises(ValidationException):
            calculate_salary_breakdown(Decimal("-1"), 20, 20)

    def test_as_dict_shape(self):
        data = calculate_salary_breakdown(Decimal("1000"), 10, 5).as_dict()

        assert data["working_days"] == {"total": 10, "worked": 5}
        assert data["pro_rated_basic"] == Decimal("500.00")
        assert data["net_salary"] == Decimal("500.00")
