"""Shared fixtures for the laserdesk tests: a throwaway SQLite database and seed helpers."""
import shutil
import tempfile
from pathlib import Path

from sqlmodel import Session

from laserdesk.db.order_store import OrderStore
from laserdesk.db.session import build_engine, init_db
from laserdesk.models.order import Order, SideStatus
from laserdesk.models.rules import AssetRule, AssetType, TemplateRule
from laserdesk.services.status import refresh_overall_status

TEMPLATE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<LightBurnProject AppVersion="1.4.00" FormatVersion="1">
    <Shape Type="Text" CutIndex="0" Name="{{CUSTOMER_NAME}}" Font="Arial,-1,100,5,50,0,0,0,0,0" Str="NAME" H="8"/>
    <Shape Type="Bitmap" CutIndex="0" Name="{{DESIGN_IMAGE}}" W="40" H="40" File="" SourceHash="123" Data="AAAA"/>
</LightBurnProject>
"""


class TempDatabase:
    """A file-backed SQLite database in a temporary directory."""

    def __init__(self):
        self.dir = Path(tempfile.mkdtemp(prefix="laserdesk-test-"))
        self.engine = build_engine(f"sqlite:///{self.dir / 'test.db'}")
        init_db(self.engine)

    def session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def store(self) -> OrderStore:
        return OrderStore(self.session)

    def close(self):
        self.engine.dispose()
        shutil.rmtree(self.dir, ignore_errors=True)


def add_order(db: TempDatabase, order_id: str, sku: str = "MUG-RED-01", custom_field: str = None, **fields) -> Order:
    order = Order(
        order_id=order_id,
        sku=sku,
        buyer_name=fields.pop("buyer_name", "Anna Rossi"),
        custom_field=custom_field,
        raw_payload="{}",
        **fields,
    )
    with db.session() as session:
        session.add(order)
        session.commit()
        session.refresh(order)
    return order


def add_template_rule(db: TempDatabase, pattern: str, filename: str, priority: int = 0) -> TemplateRule:
    rule = TemplateRule(sku_pattern=pattern, template_filename=filename, priority=priority)
    with db.session() as session:
        session.add(rule)
        session.commit()
        session.refresh(rule)
    return rule


def add_asset_rule(db: TempDatabase, keyword: str, asset_type: AssetType, value: str) -> AssetRule:
    rule = AssetRule(trigger_keyword=keyword, asset_type=asset_type, value=value)
    with db.session() as session:
        session.add(rule)
        session.commit()
        session.refresh(rule)
    return rule


def set_side(db: TempDatabase, order_id: str, side: str, status: SideStatus, attempt_count: int = None):
    with db.session() as session:
        order = OrderStore._get(session, order_id)
        setattr(order, f"{side}_status", status)
        if attempt_count is not None:
            setattr(order, f"{side}_attempt_count", attempt_count)
        refresh_overall_status(order)
        session.add(order)
        session.commit()
