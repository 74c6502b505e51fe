"""
Side job processing.

A job takes one side of one order from pending/printed/error through
processing to printed, or back to pending/error on failure:

    claim (compare-and-set to processing)
    -> resolve template -> generate artifact -> render (with retries) -> verify
    -> printed                       on success
    -> pending / error               on failure, classified as configuration or transient

Failures are written to the side before SideJobFailed is raised. Image assets
copied into the working area are removed only when the job fails; after a
successful job the renderer still needs them.
"""
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from laserdesk import config
from laserdesk.db.order_store import OrderStore
from laserdesk.errors import (
    ConfigurationError,
    OrderNotFound,
    ProductionError,
    SideJobFailed,
    TransientError,
)
from laserdesk.models.order import Order, Side, SideStatus, utcnow
from laserdesk.services.artifact import ArtifactGenerator, verify_artifact
from laserdesk.services.renderer import LightBurnRenderer, Renderer, RenderInvoker
from laserdesk.services.rules import RuleEngine, extract_name

logger = logging.getLogger(__name__)


@dataclass
class SideJobResult:
    order_id: str
    side: Side
    status: SideStatus
    artifact_path: Path
    overall_status: str
    detected_color: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "side": self.side.value,
            "status": self.status.value,
            "overall_status": self.overall_status,
            "artifact_path": str(self.artifact_path),
            "detected_color": self.detected_color,
            "warning": self.warning,
        }


class SideJobProcessor:
    def __init__(
        self,
        store: OrderStore = None,
        rules: RuleEngine = None,
        generator: ArtifactGenerator = None,
        renderer: Renderer = None,
        sleep: Callable[[float], None] = time.sleep,
        settle_seconds: float = None,
        min_artifact_bytes: int = None,
        max_attempts: int = None,
        config_error_attempts: int = None,
    ):
        self.store = store or OrderStore()
        self.rules = rules or RuleEngine(self.store.session_factory)
        self.generator = generator or ArtifactGenerator()
        self.invoker = RenderInvoker(renderer or LightBurnRenderer(), sleep=sleep)
        self.sleep = sleep
        self.settle_seconds = settle_seconds
        self.min_artifact_bytes = min_artifact_bytes
        self.max_attempts = config.MAX_TRANSIENT_ATTEMPTS if max_attempts is None else max_attempts
        self.config_error_attempts = (
            config.CONFIG_ERROR_ATTEMPTS if config_error_attempts is None else config_error_attempts
        )

    def process_side(self, order_id: str, side: Side) -> SideJobResult:
        """Run one production job for a side.

        Raises OrderNotFound, SideNotRequired or AlreadyProcessing before any work
        starts, and SideJobFailed after a failure has been recorded.
        """
        side = Side(side)
        previous, order = self.store.claim_side(order_id, side)
        warning = None
        if previous == SideStatus.PRINTED:
            warning = f"{side.value} side of order {order_id} was already printed; sent again"
            logger.warning("%s", warning)

        copied_assets: List[Path] = []
        try:
            artifact = self._produce(order, side, copied_assets)
        except ProductionError as e:
            raise self._record_failure(order, side, e, copied_assets) from e
        except Exception as e:
            logger.exception("Unexpected failure processing side=%s order_id=%s", side.value, order_id)
            error = TransientError("UNEXPECTED_ERROR", str(e) or e.__class__.__name__)
            raise self._record_failure(order, side, error, copied_assets) from e

        updated = self.store.finish_side(order_id, side, SideStatus.PRINTED, processed_at=utcnow())
        if updated is None:
            raise OrderNotFound(order_id, f"Order {order_id} was removed while side '{side.value}' was processing")

        logger.info("Side printed order_id=%s side=%s overall=%s", order_id, side.value, updated.overall_status.value)
        return SideJobResult(
            order_id=order_id,
            side=side,
            status=updated.side_status(side),
            artifact_path=artifact.path,
            overall_status=updated.overall_status.value,
            detected_color=artifact.detected_color,
            warning=warning,
        )

    def _produce(self, order: Order, side: Side, copied_assets: List[Path]):
        template = self.rules.resolve_template(order.sku, side)
        if not template:
            raise ConfigurationError("NO_TEMPLATE_MATCH", f"No template rule found for SKU: {order.sku or '(none)'} side: {side.value}")

        name = extract_name(order.custom_field)
        assets = self.rules.resolve_assets(order.custom_field)
        logger.info("Generating order_id=%s side=%s template=%s name=%r", order.order_id, side.value, template, name)

        artifact = self.generator.generate(order, side, template, name, assets, copied_assets)
        self.invoker.invoke(artifact.path)
        verify_artifact(
            artifact.path,
            min_bytes=self.min_artifact_bytes,
            settle_seconds=self.settle_seconds,
            sleep=self.sleep,
        )
        return artifact

    def _record_failure(self, order: Order, side: Side, error: ProductionError, copied_assets: List[Path]) -> Exception:
        self._cleanup(copied_assets)

        if error.permanent:
            status = SideStatus.ERROR
            attempts = self.config_error_attempts
        else:
            attempts = getattr(order, f"{side.value}_attempt_count") + 1
            status = SideStatus.PENDING if attempts < self.max_attempts else SideStatus.ERROR

        message = error.persisted_message()
        updated = self.store.finish_side(order.order_id, side, status, error_message=message, attempt_count=attempts)
        logger.error(
            "Side job failed order_id=%s side=%s status=%s attempts=%s: %s",
            order.order_id, side.value, status.value, attempts, message,
        )
        if updated is None:
            return OrderNotFound(order.order_id, f"Order {order.order_id} was removed while side '{side.value}' was processing")
        return SideJobFailed(order.order_id, side, status, attempts, error)

    @staticmethod
    def _cleanup(paths: List[Path]) -> None:
        for path in paths:
            try:
                Path(path).unlink(missing_ok=True)
                logger.info("Removed working-area asset %s", path)
            except OSError as e:
                logger.warning("Could not remove working-area asset %s: %s", path, e)

    def reset_side(self, order_id: str, side: Side) -> Order:
        return self.store.reset_side(order_id, Side(side))
