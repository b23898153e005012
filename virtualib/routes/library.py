from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.library import LibraryCreate, LibraryUpdate, LibraryResponse
from virtualib.services import libraries
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/libraries", tags=["Libraries"])

@router.get("", response_model=List[LibraryResponse])
def list_libraries(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """List the libraries visible to the current user."""
    rows = libraries.list_libraries(db, principal)
    return [LibraryResponse.from_library(library, counts) for library, counts in rows]

@router.get("/{library_id}", response_model=LibraryResponse)
def get_library(
    library_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    library = libraries.get_library(db, principal, library_id)
    return LibraryResponse.from_library(library, libraries.counts_for(db, library))

@router.post("", response_model=LibraryResponse, status_code=status.HTTP_201_CREATED)
def create_library(
    library_data: LibraryCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Create a library. Librarians become its owner."""
    library = libraries.create_library(db, principal, library_data)
    return LibraryResponse.from_library(library, libraries.counts_for(db, library))

@router.put("/{library_id}", response_model=LibraryResponse)
def update_library(
    library_id: int,
    library_data: LibraryUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    library = libraries.update_library(db, principal, library_id, library_data)
    return LibraryResponse.from_library(library, libraries.counts_for(db, library))

@router.delete("/{library_id}")
def delete_library(
    library_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Delete a library with its books, categories, loans and requests."""
    libraries.delete_library(db, principal, library_id)
    return {"message": "Library deleted successfully", "id": library_id}
