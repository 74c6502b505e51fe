"""
Rule evaluation: which template a SKU uses for a side, which decorative assets
a customization text asks for, and which name gets engraved.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Callable, List, Optional

from sqlmodel import Session, col, select

from laserdesk.db.session import get_session
from laserdesk.models.order import Side
from laserdesk.models.rules import AssetRule, AssetType, TemplateRule

logger = logging.getLogger(__name__)

# Filename stem suffixes that tie a template to one side, e.g. "mug-fronte.lbrn2".
SIDE_MARKERS = {
    Side.FRONT: ("fronte", "front"),
    Side.RETRO: ("retro", "back"),
}
_MARKER_SEPARATORS = ("-", "_", ".", " ")

NAME_RE = re.compile(r"(?:Engrave|Name)\s*:\s*([^,]+)", re.I)


@dataclass
class ResolvedAssets:
    image: Optional[str] = None
    font: Optional[str] = None
    color: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.image or self.font or self.color)


def template_side(filename: str) -> Optional[Side]:
    """Return the side a template filename is marked for, or None if unmarked."""
    stem = PurePath(filename).stem.lower()
    for side, markers in SIDE_MARKERS.items():
        for marker in markers:
            if any(stem.endswith(sep + marker) for sep in _MARKER_SEPARATORS):
                return side
    return None


def is_side_compatible(filename: str, side: Side) -> bool:
    marked = template_side(filename)
    if side == Side.RETRO:
        return marked == Side.RETRO
    # unmarked templates are front templates
    return marked in (Side.FRONT, None)


def extract_name(text: Optional[str]) -> str:
    """Text after an "Engrave:" or "Name:" marker, up to the next comma. Empty if absent."""
    if not text:
        return ""
    match = NAME_RE.search(text)
    return match.group(1).strip() if match else ""


def sort_template_rules(rules: List[TemplateRule]) -> List[TemplateRule]:
    # higher priority first, then longer (more specific) patterns
    return sorted(rules, key=lambda r: (-r.priority, -len(r.sku_pattern)))


class RuleEngine:
    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self.session_factory = session_factory

    def template_rules(self) -> List[TemplateRule]:
        with self.session_factory() as session:
            return list(session.exec(select(TemplateRule).order_by(col(TemplateRule.priority).desc(), TemplateRule.id)).all())

    def asset_rules(self) -> List[AssetRule]:
        with self.session_factory() as session:
            return list(session.exec(select(AssetRule).order_by(AssetRule.id)).all())

    def resolve_template(self, sku: Optional[str], side: Side) -> Optional[str]:
        """Pick the template filename for a SKU and side.

        Rules are walked by priority (then pattern length). A rule whose pattern is
        contained in the SKU but whose file belongs to the other side is skipped and
        the search continues with the next candidate.
        """
        if not sku:
            logger.warning("No SKU provided, no template for side=%s", side.value)
            return None

        rules = self.template_rules()
        if not rules:
            logger.warning("No template rules configured")
            return None

        normalized_sku = sku.lower()
        for rule in sort_template_rules(rules):
            if rule.sku_pattern.lower() not in normalized_sku:
                continue
            if not is_side_compatible(rule.template_filename, side):
                logger.debug(
                    "Skipping rule pattern=%s file=%s: not usable for side=%s",
                    rule.sku_pattern, rule.template_filename, side.value,
                )
                continue
            logger.info(
                "Template match sku=%s side=%s pattern=%s file=%s priority=%s",
                sku, side.value, rule.sku_pattern, rule.template_filename, rule.priority,
            )
            return rule.template_filename

        logger.info("No template rule for sku=%s side=%s", sku, side.value)
        return None

    def resolve_assets(self, text: Optional[str]) -> ResolvedAssets:
        """Collect decorative assets whose trigger keyword occurs in text.

        Unlike template resolution there is no priority here: every rule is checked
        and when several rules of one asset type match, the last one in id order wins.
        """
        resolved = ResolvedAssets()
        if not text:
            return resolved

        normalized = text.lower()
        for rule in self.asset_rules():
            if rule.trigger_keyword.lower() not in normalized:
                continue
            logger.info("Asset rule matched keyword=%s type=%s value=%s", rule.trigger_keyword, rule.asset_type, rule.value)
            if rule.asset_type == AssetType.IMAGE:
                resolved.image = rule.value
            elif rule.asset_type == AssetType.FONT:
                resolved.font = rule.value
            elif rule.asset_type == AssetType.COLOR:
                resolved.color = rule.value
        return resolved
