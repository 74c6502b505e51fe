from fastapi import APIRouter

from laserdesk.db.order_store import OrderStore

router = APIRouter()


@router.get("/stats")
def stats():
    by_status = OrderStore().count_by_status()
    return {"total_orders": sum(by_status.values()), "by_status": by_status}
