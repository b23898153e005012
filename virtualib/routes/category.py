from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse
from virtualib.services import catalog
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/categories", tags=["Categories"])

@router.get("", response_model=List[CategoryResponse])
def list_categories(
    library_id: Optional[int] = Query(None, description="Filter by library"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """List categories with the number of books in each."""
    rows = catalog.list_categories(db, principal, library_id)
    return [CategoryResponse.from_category(category, count) for category, count in rows]

@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    category_data: CategoryCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    category = catalog.create_category(db, principal, category_data)
    return CategoryResponse.from_category(category)

@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    category = catalog.update_category(db, principal, category_id, category_data)
    return CategoryResponse.from_category(category, catalog.category_book_count(db, category))

@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    catalog.delete_category(db, principal, category_id)
    return {"message": "Category deleted successfully", "id": category_id}
