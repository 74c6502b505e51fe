from laserdesk.models.order import Order, OverallStatus, SideStatus

_DONE_RETRO = (SideStatus.PRINTED, SideStatus.NOT_REQUIRED)


def aggregate_status(front: SideStatus, retro: SideStatus) -> OverallStatus:
    """Derive the order status from its two side statuses.

    Checked in order: printed, error, processing, pending.
    """
    front = SideStatus(front)
    retro = SideStatus(retro)
    if front == SideStatus.NOT_REQUIRED:
        raise ValueError("front side is always required")

    if front == SideStatus.PRINTED and retro in _DONE_RETRO:
        return OverallStatus.PRINTED
    if SideStatus.ERROR in (front, retro):
        return OverallStatus.ERROR
    if SideStatus.PROCESSING in (front, retro):
        return OverallStatus.PROCESSING
    return OverallStatus.PENDING


def refresh_overall_status(order: Order) -> OverallStatus:
    order.overall_status = aggregate_status(order.front_status, order.retro_status)
    return order.overall_status
