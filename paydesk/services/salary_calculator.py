"""
PayDesk - Salary Calculator

Pure salary arithmetic for a salary slip period.

    pro-rated basic = basic * worked / total   (rounded to 0.01, half-up)
    gross           = pro-rated basic + sum of positive allowances
    net             = gross - sum of positive deductions   (may be negative)
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

from paydesk.models.salary_slip import ALLOWANCE_COMPONENTS, DEDUCTION_COMPONENTS
from paydesk.utils.error_handling import InvalidWorkingDaysException, ValidationException

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class SalaryBreakdown:
    """Computed figures for one salary slip."""
    basic_salary: Decimal
    working_days_total: int
    working_days_worked: int
    pro_rated_basic: Decimal
    allowances: Dict[str, Decimal] = field(default_factory=dict)
    deductions: Dict[str, Decimal] = field(default_factory=dict)
    total_allowances: Decimal = ZERO
    total_deductions: Decimal = ZERO
    gross: Decimal = ZERO
    net: Decimal = ZERO

    def as_dict(self) -> dict:
        return {
            "basic_salary": self.basic_salary,
            "working_days": {
                "total": self.working_days_total,
                "worked": self.working_days_worked,
            },
            "pro_rated_basic": self.pro_rated_basic,
            "allowances": dict(self.allowances),
            "deductions": dict(self.deductions),
            "total_allowances": self.total_allowances,
            "total_deductions": self.total_deductions,
            "gross_salary": self.gross,
            "net_salary": self.net,
        }


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _normalise_components(
    values: Optional[Mapping[str, object]],
    allowed: tuple,
    kind: str,
) -> Dict[str, Decimal]:
    values = values or {}
    unknown = set(values) - set(allowed)
    if unknown:
        raise ValidationException(
            f"Unknown {kind} component(s): {', '.join(sorted(unknown))}",
            field=kind,
            details={"allowed": list(allowed)},
        )
    components = {}
    for name in allowed:
        amount = _to_decimal(values.get(name) or 0)
        if amount < 0:
            raise ValidationException(
                f"{kind.rstrip('s').capitalize()} '{name}' cannot be negative",
                field=f"{kind}.{name}",
            )
        components[name] = amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return components


def pro_rate(basic_salary: Decimal, total_days: int, worked_days: int) -> Decimal:
    """Scale basic salary by worked/total days."""
    if total_days < 1 or worked_days < 0 or worked_days > total_days:
        raise InvalidWorkingDaysException(total=total_days, worked=worked_days)
    exact = _to_decimal(basic_salary) * Decimal(worked_days) / Decimal(total_days)
    return exact.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_salary_breakdown(
    basic_salary,
    working_days_total: int,
    working_days_worked: int,
    allowances: Optional[Mapping[str, object]] = None,
    deductions: Optional[Mapping[str, object]] = None,
) -> SalaryBreakdown:
    """
    Compute a salary breakdown.

    Raises:
        ValidationException: negative basic or component, unknown component
        InvalidWorkingDaysException: total < 1 or worked outside 0..total
    """
    basic = _to_decimal(basic_salary)
    if basic < 0:
        raise ValidationException("Basic salary cannot be negative", field="basic_salary")

    pro_rated_basic = pro_rate(basic, working_days_total, working_days_worked)
    allowance_components = _normalise_components(allowances, ALLOWANCE_COMPONENTS, "allowances")
    deduction_components = _normalise_components(deductions, DEDUCTION_COMPONENTS, "deductions")

    total_allowances = sum((v for v in allowance_components.values() if v > 0), ZERO)
    total_deductions = sum((v for v in deduction_components.values() if v > 0), ZERO)
    gross = pro_rated_basic + total_allowances

    return SalaryBreakdown(
        basic_salary=basic.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        working_days_total=working_days_total,
        working_days_worked=working_days_worked,
        pro_rated_basic=pro_rated_basic,
        allowances=allowance_components,
        deductions=deduction_components,
        total_allowances=total_allowances,
        total_deductions=total_deductions,
        gross=gross,
        # No floor at zero
        net=gross - total_deductions,
    )
