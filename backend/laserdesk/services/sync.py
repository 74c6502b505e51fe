"""
Order synchronization.

The store mirrors the feed: new order ids are inserted, existing ones are left
exactly as they are (side state included), and orders that are no longer in the
feed are deleted. Afterwards the retro side is switched on for every order whose
SKU has a retro template.
"""
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

from sqlmodel import Session, col, select

from laserdesk import config
from laserdesk.db.order_store import OrderStore
from laserdesk.errors import SyncIntegrityError
from laserdesk.models.order import Order, Side, SideStatus
from laserdesk.services.feed import FeedReader, normalize_record
from laserdesk.services.rules import RuleEngine

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    added: int = 0
    duplicates: int = 0
    deleted: int = 0
    skipped: int = 0
    total_parsed: int = 0
    retro_enabled: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class OrderSynchronizer:
    def __init__(
        self,
        reader: FeedReader = None,
        store: OrderStore = None,
        rules: RuleEngine = None,
        feed_url_provider: Callable[[], Optional[str]] = config.get_feed_url,
    ):
        self.reader = reader or FeedReader()
        self.store = store or OrderStore()
        self.rules = rules or RuleEngine(self.store.session_factory)
        self.feed_url_provider = feed_url_provider

    def sync(self, location: Optional[str] = None) -> SyncResult:
        location = location or self.feed_url_provider()
        document = self.reader.read(location)

        result = SyncResult(total_parsed=len(document.records))
        incoming_ids: List[str] = []
        seen = set()

        with self.store.session_factory() as session:
            for record in document.records:
                normalized = normalize_record(record)
                if not normalized.order_id:
                    result.skipped += 1
                    continue

                if normalized.order_id not in seen:
                    seen.add(normalized.order_id)
                    incoming_ids.append(normalized.order_id)

                if self.store.insert_if_absent(session, normalized.model_dump()):
                    result.added += 1
                else:
                    result.duplicates += 1

            if result.total_parsed > 0 and result.added + result.duplicates + result.skipped == 0:
                session.rollback()
                raise SyncIntegrityError("Sync completed with zero added/duplicate/skipped records. Mapping likely failed.")

            # without any order id the mapping is broken; never mirror that into an empty store
            if incoming_ids:
                result.deleted = self.store.delete_missing(session, incoming_ids)
            elif result.total_parsed:
                logger.warning("Feed %s produced no order ids; %s records skipped, nothing deleted", location, result.skipped)

            session.commit()

            result.retro_enabled = self._enable_retro(session, incoming_ids)
            session.commit()

        logger.info(
            "Sync finished added=%s duplicates=%s deleted=%s skipped=%s total=%s retro_enabled=%s",
            result.added, result.duplicates, result.deleted, result.skipped, result.total_parsed, result.retro_enabled,
        )
        return result

    def _enable_retro(self, session: Session, order_ids: List[str]) -> int:
        """Require the retro side for touched orders whose SKU has a retro template.

        Evaluated once per distinct SKU.
        """
        if not order_ids:
            return 0

        stmt = select(Order.order_id, Order.sku).where(
            col(Order.order_id).in_(order_ids),
            Order.retro_status == SideStatus.NOT_REQUIRED,
        )
        by_sku: Dict[str, List[str]] = defaultdict(list)
        for order_id, sku in session.exec(stmt).all():
            if sku:
                by_sku[sku].append(order_id)

        retro_ids = [
            order_id
            for sku, ids in by_sku.items()
            if self.rules.resolve_template(sku, Side.RETRO)
            for order_id in ids
        ]
        promoted = self.store.promote_retro(session, retro_ids)
        if promoted:
            logger.info("Retro side enabled for %s order(s)", promoted)
        return promoted
