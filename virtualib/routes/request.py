from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.request import BorrowRequestCreate, RequestDecision, BorrowRequestResponse, RequestFeedEntry
from virtualib.services import borrow_requests
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/requests", tags=["Requests"])

@router.get("", response_model=List[RequestFeedEntry])
def list_requests(
    kind: Optional[str] = Query(None, description="borrow or return"),
    status: Optional[str] = Query(None, description="Filter by status"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Borrow and return requests in one list, newest first."""
    return borrow_requests.list_request_feed(db, principal, kind=kind, status=status)

@router.post("", response_model=BorrowRequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    request_data: BorrowRequestCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Ask to borrow a book."""
    request = borrow_requests.create_request(db, principal, request_data.book_id)
    return BorrowRequestResponse.model_validate(request)

@router.put("/{request_id}", response_model=BorrowRequestResponse)
def decide_request(
    request_id: int,
    decision: RequestDecision,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Approve or reject a pending request. Approval opens the loan."""
    request, loan = borrow_requests.decide_request(db, principal, request_id, decision.status)
    response = BorrowRequestResponse.model_validate(request)
    if loan is not None:
        response.loan_id = loan.id
    return response

@router.delete("/{request_id}", response_model=BorrowRequestResponse)
def cancel_request(
    request_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Cancel your own pending request."""
    return BorrowRequestResponse.model_validate(borrow_requests.cancel_request(db, principal, request_id))
