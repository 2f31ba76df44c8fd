"""Buyer-side property calculators: loan affordability and rental ROI."""

from dataclasses import dataclass

# Share of disposable monthly income banks typically allow as EMI
EMI_INCOME_SHARE = 0.45


@dataclass
class AffordabilityResult:
    max_loan: int
    max_property_value: int
    suggested_emi: int
    dti: str  # percent, one decimal


@dataclass
class ROIResult:
    total_rent: int
    final_value: int
    total_return: int
    roi: str  # percent, one decimal


def _round(value: float) -> int:
    # Half rounds up, matching the figures shown on the calculator pages
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def affordability(
    annual_income: float,
    monthly_expenses: float,
    down_payment: float,
    interest_rate: float,
    tenure_years: int,
) -> AffordabilityResult:
    """Largest loan whose EMI fits in the allowed share of disposable income."""
    monthly_income = annual_income / 12
    max_emi = (monthly_income - monthly_expenses) * EMI_INCOME_SHARE

    monthly_rate = interest_rate / 12 / 100
    months = tenure_years * 12

    if monthly_rate == 0:
        max_loan = max_emi * months
    else:
        growth = (1 + monthly_rate) ** months
        max_loan = (max_emi * (growth - 1)) / (monthly_rate * growth)

    dti = (max_emi / monthly_income) * 100 if monthly_income else 0.0

    return AffordabilityResult(
        max_loan=_round(max_loan),
        max_property_value=_round(max_loan + down_payment),
        suggested_emi=_round(max_emi),
        dti=f"{dti:.1f}",
    )


def rental_roi(
    investment_amount: float,
    monthly_rent: float,
    appreciation_rate: float,
    holding_years: int,
) -> ROIResult:
    total_rent = monthly_rent * 12 * holding_years
    final_value = investment_amount * (1 + appreciation_rate / 100) ** holding_years
    total_return = total_rent + final_value - investment_amount
    roi = (total_return / investment_amount) * 100 if investment_amount else 0.0

    return ROIResult(
        total_rent=_round(total_rent),
        final_value=_round(final_value),
        total_return=_round(total_return),
        roi=f"{roi:.1f}",
    )
