"""
Feed reading and record normalization.

A feed is fetched from a URL or a local path and parsed according to its kind
(delimited text, JSON or XML). Each raw record is then mapped onto the canonical
order fields through HEADER_ALIASES.
"""
import csv
import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import requests
from pydantic import BaseModel

from laserdesk import config
from laserdesk.errors import FeedMalformed, FeedUnreachable

logger = logging.getLogger(__name__)


class FeedKind(str, Enum):
    DELIMITED = "delimited"
    STRUCTURED = "structured"
    MARKUP = "markup"


# HEADER ALIASES
# Keys are canonical order fields; values are accepted header spellings after
# normalization (lowercase, everything but letters and digits removed), e.g.
# "Amazon Order ID" -> "amazonorderid", "Purchase_Date" -> "purchasedate".
# The first alias with a non-empty value wins.
HEADER_ALIASES = {
    "order_id": ("orderid", "amazonorderid", "id"),
    "purchase_date": ("purchasedate", "orderdate", "date"),
    "sku": ("sku", "sellersku", "productsku", "itemsku"),
    "buyer_name": ("buyername", "buyer", "customername", "recipientname"),
    "custom_field": ("custom", "customfield", "customfieldvalue"),
}


class NormalizedRecord(BaseModel):
    order_id: Optional[str] = None
    purchase_date: Optional[str] = None
    sku: Optional[str] = None
    buyer_name: Optional[str] = None
    custom_field: Optional[str] = None
    raw_payload: str


@dataclass
class FeedDocument:
    records: List[Dict[str, Any]]
    kind: FeedKind
    source: str
    content_type: Optional[str] = None


def normalize_header(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).strip().lower())


def normalize_record(record: Dict[str, Any]) -> NormalizedRecord:
    values: Dict[str, str] = {}
    for key, value in record.items():
        values[normalize_header(key)] = "" if value is None else str(value).strip()

    fields: Dict[str, Optional[str]] = {}
    for canonical, aliases in HEADER_ALIASES.items():
        fields[canonical] = next((values[a] for a in aliases if values.get(a)), None)

    return NormalizedRecord(raw_payload=json.dumps(record, default=str, ensure_ascii=False), **fields)


def detect_kind(content_type: Optional[str], source: str) -> FeedKind:
    ct = (content_type or "").lower()
    if "json" in ct:
        return FeedKind.STRUCTURED
    if "xml" in ct:
        return FeedKind.MARKUP

    suffix = Path(urlparse(source).path or source).suffix.lower()
    if suffix == ".json":
        return FeedKind.STRUCTURED
    if suffix == ".xml":
        return FeedKind.MARKUP
    return FeedKind.DELIMITED


def _parse_delimited(text: str, source: str) -> List[Dict[str, Any]]:
    first_line = text.split("\n", 1)[0]
    suffix = Path(urlparse(source).path or source).suffix.lower()
    if suffix in (".tsv", ".txt") or ("\t" in first_line and "," not in first_line):
        delimiter = "\t"
    else:
        delimiter = ","

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter, strict=True)
    records = []
    for row in reader:
        cleaned = {
            (k or "").strip(): (v.strip() if isinstance(v, str) else v)
            for k, v in row.items()
            if k is not None
        }
        if not any(cleaned.values()):
            continue
        records.append(cleaned)
    return records


def _parse_structured(text: str) -> List[Dict[str, Any]]:
    data = json.loads(text)
    if isinstance(data, dict):
        if isinstance(data.get("records"), list):
            data = data["records"]
        elif isinstance(data.get("data"), list):
            data = data["data"]
        else:
            data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise FeedMalformed("JSON feed must contain objects")
    return data


def _parse_markup(text: str) -> List[Dict[str, Any]]:
    root = ET.fromstring(text)
    records = []
    for element in root:
        record: Dict[str, Any] = dict(element.attrib)
        for child in element:
            record[child.tag] = (child.text or "").strip()
        records.append(record)
    return records


def parse_feed(text: str, kind: FeedKind, source: str = "") -> List[Dict[str, Any]]:
    try:
        if kind == FeedKind.STRUCTURED:
            return _parse_structured(text)
        if kind == FeedKind.MARKUP:
            return _parse_markup(text)
        return _parse_delimited(text, source)
    except FeedMalformed:
        raise
    except (csv.Error, json.JSONDecodeError, ET.ParseError) as e:
        raise FeedMalformed(f"Could not parse {kind.value} feed {source}: {e}") from e


def _decode(data: bytes, source: str) -> str:
    # strict: a mis-encoded name must never reach the engraving
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise FeedMalformed(f"Feed {source} is not valid UTF-8: {e}") from e


class FeedReader:
    """Loads a feed from an http(s) URL, a file:// URL or a local path."""

    def __init__(self, timeout: float = None, session: Optional[requests.Session] = None):
        self.timeout = timeout if timeout is not None else config.FEED_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _fetch_remote(self, location: str):
        try:
            resp = self.session.get(location, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FeedUnreachable(f"Feed fetch failed for {location}: {e}") from e
        return _decode(resp.content, location), resp.headers.get("content-type")

    @staticmethod
    def _fetch_local(location: str) -> str:
        path = Path(unquote(urlparse(location).path)) if location.startswith("file://") else Path(location)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FeedUnreachable(f"Feed file could not be read {path}: {e}") from e
        return _decode(data, str(path))

    def read(self, location: str) -> FeedDocument:
        if not location:
            raise FeedUnreachable("No feed location configured")

        if location.startswith(("http://", "https://")):
            text, content_type = self._fetch_remote(location)
        else:
            text, content_type = self._fetch_local(location), None

        kind = detect_kind(content_type, location)
        records = parse_feed(text, kind, location)
        logger.info("Read feed source=%s kind=%s records=%s", location, kind.value, len(records))
        return FeedDocument(records=records, kind=kind, source=location, content_type=content_type)
