"""Public calculator endpoints backing the /calculators page."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ghardaar.pricing.calculators import affordability, rental_roi
from ghardaar.pricing.notation import format_price

router = APIRouter()


class AffordabilityRequest(BaseModel):
    annual_income: float = Field(1_200_000, gt=0)
    monthly_expenses: float = Field(30_000, ge=0)
    down_payment: float = Field(1_000_000, ge=0)
    interest_rate: float = Field(8.5, ge=0)
    tenure_years: int = Field(20, gt=0, le=40)


class ROIRequest(BaseModel):
    investment_amount: float = Field(5_000_000, gt=0)
    monthly_rent: float = Field(25_000, ge=0)
    appreciation_rate: float = Field(5, ge=-100)
    holding_years: int = Field(5, gt=0, le=50)


@router.post("/affordability")
async def affordability_calculator(body: AffordabilityRequest):
    result = affordability(
        body.annual_income,
        body.monthly_expenses,
        body.down_payment,
        body.interest_rate,
        body.tenure_years,
    )
    return {
        "max_loan": result.max_loan,
        "max_property_value": result.max_property_value,
        "suggested_emi": result.suggested_emi,
        "dti": result.dti,
        "formatted": {
            "max_loan": format_price(result.max_loan),
            "max_property_value": format_price(result.max_property_value),
            "suggested_emi": format_price(result.suggested_emi),
        },
    }


@router.post("/roi")
async def roi_calculator(body: ROIRequest):
    result = rental_roi(
        body.investment_amount,
        body.monthly_rent,
        body.appreciation_rate,
        body.holding_years,
    )
    return {
        "total_rent": result.total_rent,
        "final_value": result.final_value,
        "total_return": result.total_return,
        "roi": result.roi,
        "formatted": {
            "total_rent": format_price(result.total_rent),
            "final_value": format_price(result.final_value),
            "total_return": format_price(result.total_return),
        },
    }
