from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
import lifecycle
from dependencies import get_actor, get_db
from errors import NotFoundError
from filter_helpers import normalize_limit, normalize_offset, normalize_status
from models import Asset, AssetIn, AssetStats, AssetUpdate, MaintenanceIn

router = APIRouter()


@router.get("/assets", response_model=list[Asset])
def list_assets_api(
    status: Optional[str] = None,
    include_archived: bool = False,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    lifecycle.refresh_statuses(db)
    return crud.list_assets(
        db,
        status=normalize_status(status),
        include_archived=include_archived,
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.get("/assets/stats", response_model=AssetStats)
def asset_stats_api(db: Session = Depends(get_db)):
    lifecycle.refresh_statuses(db)
    return crud.asset_stats(db)


@router.post("/assets", response_model=Asset, status_code=201)
def create_asset_api(
    body: AssetIn,
    db: Session = Depends(get_db),
):
    return crud.create_asset(db, body)


@router.get("/assets/{asset_id}", response_model=Asset)
def get_asset_api(
    asset_id: str,
    db: Session = Depends(get_db),
):
    asset = crud.get_asset(db, asset_id)
    if not asset:
        raise NotFoundError(f"asset {asset_id} not found")
    if asset.archived_at is None:
        asset = lifecycle.sync_status(db, asset_id)
    return asset


@router.patch("/assets/{asset_id}", response_model=Asset)
def update_asset_api(
    asset_id: str,
    body: AssetUpdate,
    db: Session = Depends(get_db),
):
    return crud.update_asset(db, asset_id, body)


@router.delete("/assets/{asset_id}", response_model=Asset)
def archive_asset_api(
    asset_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return lifecycle.archive_asset(db, asset_id, actor=actor)


@router.post("/assets/{asset_id}/maintenance", response_model=Asset)
def start_maintenance_api(
    asset_id: str,
    body: MaintenanceIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return lifecycle.start_maintenance(db, asset_id, body.status, actor=actor, reason=body.reason)


@router.post("/assets/{asset_id}/maintenance/end", response_model=Asset)
def end_maintenance_api(
    asset_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return lifecycle.end_maintenance(db, asset_id, actor=actor)


@router.post("/assets/{asset_id}/sync", response_model=Asset)
def sync_status_api(
    asset_id: str,
    db: Session = Depends(get_db),
):
    return lifecycle.sync_status(db, asset_id)
