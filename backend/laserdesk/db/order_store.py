"""
Order persistence.

All side transitions that start a job are compare-and-set updates on the side
status column: the row only changes when the status is still the value that was
read, so two callers can never both move the same side into `processing`.
Every transition recomputes `overall_status` inside the same transaction.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, select

from laserdesk.db.session import get_session
from laserdesk.errors import AlreadyProcessing, OrderNotFound, SideNotRequired
from laserdesk.models.order import (
    CLAIMABLE_STATUSES,
    Order,
    OverallStatus,
    Side,
    SideStatus,
    side_column,
    utcnow,
)
from laserdesk.services.status import refresh_overall_status

logger = logging.getLogger(__name__)

_CLAIM_ATTEMPTS = 3


class OrderStore:
    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self.session_factory = session_factory

    # --- lookups -------------------------------------------------------------

    @staticmethod
    def _get(session: Session, order_id: str) -> Optional[Order]:
        stmt = select(Order).where(Order.order_id == order_id).execution_options(populate_existing=True)
        return session.exec(stmt).first()

    def get(self, order_id: str) -> Optional[Order]:
        with self.session_factory() as session:
            return self._get(session, order_id)

    def list(
        self,
        limit: int = 50,
        offset: int = 0,
        search: Optional[str] = None,
        status: Optional[OverallStatus] = None,
        has_custom_field: Optional[bool] = None,
    ) -> List[Order]:
        stmt = select(Order)
        if search:
            stmt = stmt.where(col(Order.order_id).contains(search))
        if status is not None:
            stmt = stmt.where(Order.overall_status == status)
        if has_custom_field:
            stmt = stmt.where(col(Order.custom_field).is_not(None), Order.custom_field != "")
        stmt = stmt.order_by(Order.id).offset(offset).limit(limit)
        with self.session_factory() as session:
            return list(session.exec(stmt).all())

    def count_by_status(self) -> Dict[str, int]:
        stmt = select(Order.overall_status, func.count()).group_by(Order.overall_status)
        with self.session_factory() as session:
            rows = session.exec(stmt).all()
        return {OverallStatus(status).value: int(count) for status, count in rows}

    # --- sync ----------------------------------------------------------------

    @staticmethod
    def insert_if_absent(session: Session, values: Dict) -> bool:
        """Insert a new order; an existing order_id is left untouched. Returns True if added."""
        now = utcnow()
        row = {
            "overall_status": OverallStatus.PENDING,
            "front_status": SideStatus.PENDING,
            "front_attempt_count": 0,
            "retro_status": SideStatus.NOT_REQUIRED,
            "retro_attempt_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        row.update(values)

        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(Order).values(**row).on_conflict_do_nothing(index_elements=["order_id"])
        elif dialect == "postgresql":
            stmt = pg_insert(Order).values(**row).on_conflict_do_nothing(index_elements=["order_id"])
        else:
            raise NotImplementedError(f"insert-or-ignore is not supported for dialect {dialect}")
        result = session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    def delete_missing(session: Session, keep_ids: Iterable[str]) -> int:
        """Delete every order whose order_id is not in keep_ids."""
        stmt = delete(Order).where(col(Order.order_id).not_in(list(keep_ids)))
        result = session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    def promote_retro(self, session: Session, order_ids: Iterable[str]) -> int:
        """Mark the retro side as required (pending) for not-required orders in order_ids."""
        order_ids = list(order_ids)
        if not order_ids:
            return 0
        result = session.execute(
            update(Order)
            .where(col(Order.order_id).in_(order_ids), Order.retro_status == SideStatus.NOT_REQUIRED)
            .values(retro_status=SideStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            stmt = select(Order).where(col(Order.order_id).in_(order_ids)).execution_options(populate_existing=True)
            for order in session.exec(stmt).all():
                refresh_overall_status(order)
                session.add(order)
        return result.rowcount

    # --- side transitions ----------------------------------------------------

    def claim_side(self, order_id: str, side: Side) -> Tuple[SideStatus, Order]:
        """Move a side into `processing`.

        Returns the status the side had before the claim and the refreshed order.
        Raises OrderNotFound, SideNotRequired or AlreadyProcessing.
        """
        status_col = side_column(side, "status")
        with self.session_factory() as session:
            for _ in range(_CLAIM_ATTEMPTS):
                order = self._get(session, order_id)
                if order is None:
                    raise OrderNotFound(order_id)
                previous = order.side_status(side)
                if previous == SideStatus.NOT_REQUIRED:
                    raise SideNotRequired(order_id, side)
                if previous not in CLAIMABLE_STATUSES:
                    raise AlreadyProcessing(order_id, side)

                result = session.execute(
                    update(Order)
                    .where(Order.order_id == order_id, status_col == previous)
                    .values({status_col: SideStatus.PROCESSING, side_column(side, "error_message"): None})
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    order = self._get(session, order_id)
                    refresh_overall_status(order)
                    session.add(order)
                    session.commit()
                    logger.info("Claimed side=%s order_id=%s (was %s)", side.value, order_id, previous.value)
                    return previous, order
                # lost the race; look again
                session.rollback()
        raise AlreadyProcessing(order_id, side)

    def finish_side(
        self,
        order_id: str,
        side: Side,
        status: SideStatus,
        error_message: Optional[str] = None,
        attempt_count: Optional[int] = None,
        processed_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        """Write the outcome of a job for a side that is still `processing`.

        Returns None when the order no longer exists.
        """
        values = {
            side_column(side, "status"): status,
            side_column(side, "error_message"): error_message,
        }
        if attempt_count is not None:
            values[side_column(side, "attempt_count")] = attempt_count
        if processed_at is not None:
            values[side_column(side, "processed_at")] = processed_at

        with self.session_factory() as session:
            result = session.execute(
                update(Order)
                .where(Order.order_id == order_id, side_column(side, "status") == SideStatus.PROCESSING)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            order = self._get(session, order_id)
            if order is None:
                session.rollback()
                logger.warning("Order vanished while side=%s was processing order_id=%s", side.value, order_id)
                return None
            if result.rowcount == 1:
                refresh_overall_status(order)
                session.add(order)
            else:
                logger.warning(
                    "Side=%s of order_id=%s left processing before the job finished (now %s)",
                    side.value, order_id, order.side_status(side).value,
                )
            session.commit()
            return order

    def reset_side(self, order_id: str, side: Side) -> Order:
        """Manual retry: back to pending with a clean error and attempt counter."""
        status_col = side_column(side, "status")
        with self.session_factory() as session:
            order = self._get(session, order_id)
            if order is None:
                raise OrderNotFound(order_id)
            current = order.side_status(side)
            if current == SideStatus.NOT_REQUIRED:
                raise SideNotRequired(order_id, side)
            if current == SideStatus.PROCESSING:
                raise AlreadyProcessing(order_id, side)

            result = session.execute(
                update(Order)
                .where(Order.order_id == order_id, status_col == current)
                .values({
                    status_col: SideStatus.PENDING,
                    side_column(side, "error_message"): None,
                    side_column(side, "attempt_count"): 0,
                })
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                raise AlreadyProcessing(order_id, side)
            order = self._get(session, order_id)
            refresh_overall_status(order)
            session.add(order)
            session.commit()
            logger.info("Reset side=%s order_id=%s (was %s)", side.value, order_id, current.value)
            return order
