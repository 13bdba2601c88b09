"""
GET /health — load balancer health check endpoint.

No authentication required.  Reports database connectivity and whether the
invoice_sequences table is readable (a missing migration shows up here before
the first invoice creation fails).
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import check_db_connection, get_db
from app.models.sequence import InvoiceSequence

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    db: str
    invoice_numbering: str


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    db_ok = await check_db_connection()

    try:
        await db.execute(select(func.count()).select_from(InvoiceSequence))
        numbering_ok = True
    except SQLAlchemyError as exc:
        logger.error("invoice_sequences check failed: %s", exc)
        numbering_ok = False

    return HealthResponse(
        status="ok",
        db="ok" if db_ok else "error",
        invoice_numbering="ok" if numbering_ok else "error",
    )
