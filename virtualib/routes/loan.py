from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.loan import LoanResponse, LoanCreate
from virtualib.services import loans
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/loans", tags=["Loans"])

@router.get("", response_model=List[LoanResponse])
def get_loans(
    status: Optional[str] = Query(None, description="Filter by loan status"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Open loans in scope. Standard users get their own loans."""
    return [LoanResponse.model_validate(loan) for loan in loans.list_loans(db, principal, status=status)]

@router.get("/{loan_id}", response_model=LoanResponse)
def get_loan(
    loan_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get specific loan details."""
    return LoanResponse.model_validate(loans.get_loan(db, principal, loan_id))

@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
def create_loan(
    loan_data: LoanCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Lend a book directly to a library member."""
    return LoanResponse.model_validate(loans.assign_loan(db, principal, loan_data))

@router.post("/{loan_id}/return-request", response_model=LoanResponse)
def request_return(
    loan_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return LoanResponse.model_validate(loans.request_return(db, principal, loan_id))

@router.post("/{loan_id}/cancel-return", response_model=LoanResponse)
def cancel_return_request(
    loan_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return LoanResponse.model_validate(loans.cancel_return_request(db, principal, loan_id))

@router.post("/{loan_id}/return", response_model=LoanResponse)
def approve_return(
    loan_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Mark the book as returned."""
    return LoanResponse.model_validate(loans.approve_return(db, principal, loan_id))

@router.post("/{loan_id}/reject", response_model=LoanResponse)
def reject_return(
    loan_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return LoanResponse.model_validate(loans.reject_return(db, principal, loan_id))
