import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from laserdesk.db.order_store import OrderStore
from laserdesk.errors import (
    AlreadyProcessing,
    LaserdeskError,
    OrderNotFound,
    SideJobFailed,
    SideNotRequired,
)
from laserdesk.models.order import OverallStatus, Side
from laserdesk.services.export import export_order_text
from laserdesk.services.production import SideJobProcessor

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_http(e: LaserdeskError) -> HTTPException:
    if isinstance(e, OrderNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SideNotRequired):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AlreadyProcessing):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, SideJobFailed):
        return HTTPException(
            status_code=422 if e.permanent else 502,
            detail={
                "error": str(e),
                "status": e.status.value,
                "attempt_count": e.attempt_count,
                "configuration_error": e.permanent,
            },
        )
    return HTTPException(status_code=500, detail=str(e))


@router.get("")
def list_orders(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    status: Optional[OverallStatus] = None,
    has_custom_field: Optional[bool] = None,
):
    items = OrderStore().list(
        limit=limit, offset=offset, search=search, status=status, has_custom_field=has_custom_field
    )
    return {"items": [o.to_dict() for o in items], "limit": limit, "offset": offset}


@router.get("/{order_id}")
def get_order(order_id: str):
    order = OrderStore().get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.to_dict()


# plain `def` handlers run on the server's worker threads, so one slow render
# does not hold up other requests
@router.post("/{order_id}/sides/{side}/process")
def process_side(order_id: str, side: Side):
    try:
        result = SideJobProcessor().process_side(order_id, side)
    except (OrderNotFound, SideNotRequired, AlreadyProcessing, SideJobFailed) as e:
        logger.warning("Process request order_id=%s side=%s rejected: %s", order_id, side.value, e)
        raise _to_http(e)
    return result.to_dict()


@router.post("/{order_id}/sides/{side}/reset")
def reset_side(order_id: str, side: Side):
    """Manual retry: clears the error and attempt counter and puts the side back to pending."""
    try:
        order = SideJobProcessor().reset_side(order_id, side)
    except (OrderNotFound, SideNotRequired, AlreadyProcessing) as e:
        raise _to_http(e)
    return order.to_dict()


@router.post("/{order_id}/export")
def export_order(order_id: str):
    order = OrderStore().get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    path = export_order_text(order)
    return {"file_path": str(path)}
