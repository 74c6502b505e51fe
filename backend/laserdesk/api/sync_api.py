import logging

from fastapi import APIRouter, HTTPException

from laserdesk.errors import FeedMalformed, FeedUnreachable, SyncIntegrityError
from laserdesk.services.sync import OrderSynchronizer

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sync")
def sync_orders():
    """Pull the configured feed and mirror it into the order table."""
    try:
        result = OrderSynchronizer().sync()
    except FeedUnreachable as e:
        logger.error("Sync failed, feed unreachable: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    except FeedMalformed as e:
        logger.error("Sync failed, feed malformed: %s", e)
        raise HTTPException(status_code=422, detail=str(e))
    except SyncIntegrityError as e:
        logger.error("Sync failed integrity check: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()
