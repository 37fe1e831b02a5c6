"""Automation debug routes."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.database import SessionLocal
from app.errors import StoreError
from app.schemas.run import RunDetails, RunRecord, SystemSnapshot
from app.services.channels import ChannelRegistry, InMemoryChannelRegistry
from app.services.diagnostics import get_run_details, get_system_snapshot, list_recent_runs
from app.services.run_store import RunStore, SqlRunStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/automation/debug", tags=["automation"])


def get_run_store() -> RunStore:
    return SqlRunStore(SessionLocal)


def get_channel_registry(request: Request) -> ChannelRegistry:
    registry = getattr(request.app.state, "channel_registry", None)
    return registry if registry is not None else InMemoryChannelRegistry()


@router.get("/runs", response_model=List[RunRecord])
def list_runs(
    limit: Optional[int] = Query(default=None),
    store: RunStore = Depends(get_run_store),
):
    """List recent automation runs, most recent first."""
    try:
        return list_recent_runs(store, limit)
    except StoreError as e:
        logger.error(f"Failed to list runs: {e}")
        raise HTTPException(status_code=503, detail="Run store unavailable")


@router.get("/run/{run_id}", response_model=RunDetails)
def get_run(
    run_id: uuid.UUID,
    store: RunStore = Depends(get_run_store),
):
    """Get one run with its ordered events."""
    try:
        details = get_run_details(store, run_id)
    except StoreError as e:
        logger.error(f"Failed to load run {run_id}: {e}")
        raise HTTPException(status_code=503, detail="Run store unavailable")

    if details is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return details


@router.get("/system", response_model=SystemSnapshot)
def get_system(
    store: RunStore = Depends(get_run_store),
    registry: ChannelRegistry = Depends(get_channel_registry),
):
    """Get the automation system snapshot."""
    try:
        return get_system_snapshot(store, registry)
    except StoreError as e:
        logger.error(f"Failed to build system snapshot: {e}")
        raise HTTPException(status_code=503, detail="Run store unavailable")
