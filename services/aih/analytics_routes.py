"""Dashboard and search routes."""

from fastapi import APIRouter, Depends
from typing import Optional
from common.db import Database, get_db
from common.security import TokenPayload, get_current_user
from services.aih import dashboard, schemas

router = APIRouter(prefix="/api", tags=["analytics"])


@router.get("/dashboard")
async def get_dashboard(
    competencia: Optional[str] = None,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Get competence and overall figures. Defaults to the current month."""
    return await dashboard.get_dashboard(db, competencia)


@router.post("/pesquisar")
async def search(
    request: schemas.SearchRequest,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Search AIHs by status, competence, dates, values, numbers or professional."""
    return {"resultados": await dashboard.search_aihs(db, request.filtros)}
