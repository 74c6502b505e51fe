from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    FRONT = "front"
    RETRO = "retro"


class SideStatus(str, Enum):
    NOT_REQUIRED = "not_required"  # retro only
    PENDING = "pending"
    PROCESSING = "processing"
    PRINTED = "printed"
    ERROR = "error"


class OverallStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PRINTED = "printed"
    ERROR = "error"


# Side statuses from which a job may be started.
CLAIMABLE_STATUSES = (SideStatus.PENDING, SideStatus.PRINTED, SideStatus.ERROR)


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(index=True, unique=True)
    sku: Optional[str] = None
    buyer_name: Optional[str] = None
    custom_field: Optional[str] = None
    purchase_date: Optional[str] = None
    raw_payload: str

    overall_status: OverallStatus = Field(default=OverallStatus.PENDING)

    front_status: SideStatus = Field(default=SideStatus.PENDING)
    front_error_message: Optional[str] = None
    front_attempt_count: int = Field(default=0)
    front_processed_at: Optional[datetime] = None

    retro_status: SideStatus = Field(default=SideStatus.NOT_REQUIRED)
    retro_error_message: Optional[str] = None
    retro_attempt_count: int = Field(default=0)
    retro_processed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    def side_status(self, side: Side) -> SideStatus:
        return getattr(self, f"{side.value}_status")

    def side_dict(self, side: Side) -> Dict[str, Any]:
        processed_at = getattr(self, f"{side.value}_processed_at")
        return {
            "status": self.side_status(side).value,
            "error_message": getattr(self, f"{side.value}_error_message"),
            "attempt_count": getattr(self, f"{side.value}_attempt_count"),
            "processed_at": processed_at.isoformat() if processed_at else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "sku": self.sku,
            "buyer_name": self.buyer_name,
            "custom_field": self.custom_field,
            "purchase_date": self.purchase_date,
            "overall_status": self.overall_status.value,
            "front": self.side_dict(Side.FRONT),
            "retro": self.side_dict(Side.RETRO),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def side_column(side: Side, name: str):
    """Return the mapped column attribute for one side, e.g. ("front", "status")."""
    return getattr(Order, f"{side.value}_{name}")
