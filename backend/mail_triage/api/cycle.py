"""Triage cycle trigger and state endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from mail_triage.config import AppConfig, get_config
from mail_triage.database import get_db
from mail_triage.models import ScriptProperty, Trigger
from mail_triage.schemas import ConfigurationError, CycleResultOut, CycleStateOut, TriggerOut
from mail_triage.state.watermark import WATERMARK_KEY
from mail_triage.triage.service import CycleAlreadyRunningError, run_configured_cycle

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/cycle", tags=["cycle"])


@router.post("", response_model=CycleResultOut)
def trigger_cycle(config: AppConfig = Depends(get_config)) -> CycleResultOut:
    """Run one triage cycle now and return its summary.

    Runs synchronously; a second request while a cycle is in flight gets 409.
    """
    logger.info("cycle_triggered_via_api")
    try:
        summary = run_configured_cycle(config)
    except CycleAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=exc.problems) from exc

    return CycleResultOut(
        message=summary.message,
        threads_fetched=summary.threads_fetched,
        batches=summary.batches,
        failed_batches=summary.failed_batches,
        threads_labeled=summary.threads_labeled,
        total_tokens=summary.total_tokens,
    )


@router.get("/state", response_model=CycleStateOut)
def get_cycle_state(db: Session = Depends(get_db)) -> CycleStateOut:
    """Return the stored watermark and all registered triggers."""
    prop = db.get(ScriptProperty, WATERMARK_KEY)
    watermark_ms: int | None = None
    if prop is not None:
        try:
            watermark_ms = int(float(prop.value))
        except (ValueError, OverflowError):
            watermark_ms = None

    triggers = db.scalars(select(Trigger).order_by(Trigger.id)).all()
    return CycleStateOut(
        watermark_ms=watermark_ms,
        watermark_at=(
            datetime.fromtimestamp(watermark_ms / 1000, tz=timezone.utc)
            if watermark_ms is not None
            else None
        ),
        triggers=[
            TriggerOut(
                id=t.id,
                handler_name=t.handler_name,
                interval_minutes=t.interval_minutes,
                next_fire_at=t.next_fire_at,
            )
            for t in triggers
        ],
    )
