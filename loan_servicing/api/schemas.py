"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateLoanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    principal: Decimal = Field(..., description="Amount requested, decimal string or number")
    tenure_months: int = Field(..., alias="tenureMonths")
    category: Optional[str] = Field(None, description="Loan category, e.g. personal")
    purpose: Optional[str] = None


class UpdateLoanStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(..., description="pending, under_review, approved or rejected")
    admin_note: Optional[str] = Field(None, alias="adminNote")
    category: Optional[str] = None
    interest_rate: Optional[Decimal] = Field(
        None, alias="interestRate", description="Explicit annual rate in percent; overrides category lookup"
    )


class SetInterestRateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    annual_rate_percent: Decimal = Field(..., alias="annualRatePercent",
                                         description="Annual rate in percent, 0-100")
