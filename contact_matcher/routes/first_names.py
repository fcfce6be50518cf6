"""
Known first names cache routes.
"""
import logging

from fastapi import APIRouter, HTTPException

from contact_matcher.services.errors import CacheSourceUnavailable
from contact_matcher.services.first_name_oracle import get_first_name_oracle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/first-names", tags=["first-names"])


@router.get("/stats")
async def first_name_stats():
    return get_first_name_oracle().stats()


@router.post("/refresh")
def refresh_first_names():
    """Reload the known first names from the contacts DB now."""
    oracle = get_first_name_oracle()
    try:
        oracle.refresh()
    except CacheSourceUnavailable as e:
        logger.error(f"First name refresh failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return oracle.stats()
