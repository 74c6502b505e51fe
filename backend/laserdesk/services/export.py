import logging
from pathlib import Path

from laserdesk import config
from laserdesk.models.order import Order

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "ezcad_data.txt"


def export_order_text(order: Order, output_dir: Path = None) -> Path:
    """Write "<order id>, <custom field>" for the marking software's text import."""
    output_dir = Path(output_dir or config.OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / EXPORT_FILENAME
    path.write_text(f"{order.order_id}, {order.custom_field or ''}", encoding="utf-8")
    logger.info("Exported order_id=%s to %s", order.order_id, path)
    return path
