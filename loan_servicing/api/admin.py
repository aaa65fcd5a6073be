"""
Administrator endpoints: loan decisions and interest rate categories
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import LoanServicingSystem, get_system, require_admin
from .schemas import SetInterestRateRequest, UpdateLoanStatusRequest
from ..auth import Session


router = APIRouter()


@router.get("/loans")
async def list_loans(
    status: Optional[str] = None,
    session: Session = Depends(require_admin),
    system: LoanServicingSystem = Depends(get_system)
):
    """Get all loans, optionally filtered by status"""
    return [loan.to_api_dict() for loan in system.loan_manager.list_loans(session, status=status)]


@router.put("/loans/{loan_id}/status")
async def update_loan_status(
    loan_id: str,
    request: UpdateLoanStatusRequest,
    session: Session = Depends(require_admin),
    system: LoanServicingSystem = Depends(get_system)
):
    """Change a loan's status; resolves its interest rate on approval"""
    loan = system.loan_manager.update_status(
        loan_id=loan_id,
        session=session,
        status=request.status,
        admin_note=request.admin_note,
        category=request.category,
        interest_rate=request.interest_rate
    )
    return loan.to_api_dict()


@router.get("/interest-rates")
async def list_interest_rates(
    session: Session = Depends(require_admin),
    system: LoanServicingSystem = Depends(get_system)
):
    """Get all interest rate categories"""
    return [category.to_api_dict() for category in system.rate_manager.list_rates()]


@router.put("/interest-rates/{category}")
async def set_interest_rate(
    category: str,
    request: SetInterestRateRequest,
    session: Session = Depends(require_admin),
    system: LoanServicingSystem = Depends(get_system)
):
    """Create or update the annual rate for a category"""
    record = system.rate_manager.set_rate(category, request.annual_rate_percent,
                                          user_id=session.user_id)
    return record.to_api_dict()


@router.delete("/interest-rates/{category}")
async def delete_interest_rate(
    category: str,
    session: Session = Depends(require_admin),
    system: LoanServicingSystem = Depends(get_system)
):
    """Delete an interest rate category"""
    system.rate_manager.delete_rate(category, user_id=session.user_id)
    return {"success": True}
