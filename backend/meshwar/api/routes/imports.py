"""
Snapshot import endpoint.
"""

from fastapi import APIRouter, Depends

from meshwar.db.session import Database, get_database
from meshwar.schemas.imports import ImportResult, Snapshot
from meshwar.services.import_service import import_snapshot
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/imports", tags=["Imports"])


@router.post("/snapshot", response_model=ImportResult)
async def import_collections(
    snapshot: Snapshot,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """
    Load an exported snapshot of the document collections, keeping ids.
    Existing ids are skipped; an unrecognised timestamp rejects the whole
    snapshot with 400.
    """
    result = await import_snapshot(database, snapshot)
    await cache.invalidate()
    return result
