"""
Loan endpoints for applicants and viewers
"""

from fastapi import APIRouter, Depends, status

from .dependencies import LoanServicingSystem, get_current_session, get_system
from .schemas import CreateLoanRequest
from ..auth import Session


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    session: Session = Depends(get_current_session),
    system: LoanServicingSystem = Depends(get_system)
):
    """Submit a loan application"""
    loan = system.loan_manager.create_loan(
        session=session,
        principal=request.principal,
        tenure_months=request.tenure_months,
        category=request.category,
        purpose=request.purpose
    )
    return loan.to_api_dict()


@router.get("/my")
async def list_my_loans(
    session: Session = Depends(get_current_session),
    system: LoanServicingSystem = Depends(get_system)
):
    """Get the caller's loans, newest first"""
    return [loan.to_api_dict() for loan in system.loan_manager.list_loans_for_owner(session.user_id)]


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    session: Session = Depends(get_current_session),
    system: LoanServicingSystem = Depends(get_system)
):
    """Get the computed installment schedule for a loan"""
    result = system.loan_manager.get_schedule(loan_id, session)
    return {"loanId": loan_id, **result.to_dict()}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    session: Session = Depends(get_current_session),
    system: LoanServicingSystem = Depends(get_system)
):
    """Get loan details"""
    return system.loan_manager.get_loan(loan_id, session).to_api_dict()
