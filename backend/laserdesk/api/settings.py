import logging
from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlmodel import select

from laserdesk import config
from laserdesk.db.session import get_session
from laserdesk.errors import FeedMalformed, FeedUnreachable
from laserdesk.models.rules import AssetRule, AssetRuleCreate, TemplateRule, TemplateRuleCreate
from laserdesk.services.feed import FeedReader
from laserdesk.services.rules import sort_template_rules

logger = logging.getLogger(__name__)
router = APIRouter()
config_router = APIRouter()


class FeedConfig(BaseModel):
    feed_url: str


# --- template rules ---------------------------------------------------------

@router.get("/rules", response_model=List[TemplateRule])
def list_template_rules():
    with get_session() as session:
        return sort_template_rules(list(session.exec(select(TemplateRule)).all()))


@router.post("/rules", response_model=TemplateRule, status_code=201)
def create_template_rule(rule: TemplateRuleCreate):
    db_rule = TemplateRule.model_validate(rule)
    with get_session() as session:
        session.add(db_rule)
        session.commit()
        session.refresh(db_rule)
    logger.info("Template rule created id=%s pattern=%s file=%s", db_rule.id, db_rule.sku_pattern, db_rule.template_filename)
    return db_rule


@router.delete("/rules/{rule_id}")
def delete_template_rule(rule_id: int):
    with get_session() as session:
        rule = session.get(TemplateRule, rule_id)
        if rule is None:
            raise HTTPException(status_code=404, detail="Rule not found")
        session.delete(rule)
        session.commit()
    return {"ok": True}


# --- asset rules ------------------------------------------------------------

@router.get("/asset-rules", response_model=List[AssetRule])
def list_asset_rules():
    with get_session() as session:
        return list(session.exec(select(AssetRule).order_by(AssetRule.id)).all())


@router.post("/asset-rules", response_model=AssetRule, status_code=201)
def create_asset_rule(rule: AssetRuleCreate):
    db_rule = AssetRule.model_validate(rule)
    with get_session() as session:
        session.add(db_rule)
        session.commit()
        session.refresh(db_rule)
    logger.info("Asset rule created id=%s keyword=%s type=%s", db_rule.id, db_rule.trigger_keyword, db_rule.asset_type)
    return db_rule


@router.delete("/asset-rules/{rule_id}")
def delete_asset_rule(rule_id: int):
    with get_session() as session:
        rule = session.get(AssetRule, rule_id)
        if rule is None:
            raise HTTPException(status_code=404, detail="Rule not found")
        session.delete(rule)
        session.commit()
    return {"ok": True}


# --- feed configuration -----------------------------------------------------

@config_router.get("")
def get_config():
    return {"feed_url": config.get_feed_url()}


@config_router.put("")
def update_config(body: FeedConfig):
    config.set_feed_url(body.feed_url.strip())
    return {"feed_url": config.get_feed_url()}


@config_router.post("/test")
def test_feed(body: FeedConfig):
    """Read a feed without touching the store and report what came back."""
    try:
        document = FeedReader().read(body.feed_url.strip())
    except FeedUnreachable as e:
        raise HTTPException(status_code=502, detail=str(e))
    except FeedMalformed as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "kind": document.kind.value, "records": len(document.records)}
