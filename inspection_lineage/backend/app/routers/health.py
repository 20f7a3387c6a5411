# backend/app/routers/health.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..schemas import HealthOut

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
def health(db: Session = Depends(get_db)) -> HealthOut:
    db.execute(text("SELECT 1"))
    return HealthOut(
        ok=True,
        env=settings.app_env,
        details={
            "dedup_policy": settings.dedup_policy,
            "task_page_size": settings.task_page_size,
            "max_chain_depth": settings.max_chain_depth,
        },
    )
