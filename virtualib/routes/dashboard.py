from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.dashboard import DashboardStats
from virtualib.services.auth import get_current_principal
from virtualib.services.dashboard import aggregator_for
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/dashboard", tags=["Dashboard"])

@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Counts, top books and recent requests for the libraries in scope."""
    return await aggregator_for(db).collect(principal)
