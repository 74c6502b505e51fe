"""
Artifact generation for one side of an order.

Templates are LightBurn project files (XML). The generator fills the
`{{CUSTOMER_NAME}}` text shape, optionally swaps the font, points the
`{{DESIGN_IMAGE}}` shape at a copied image asset, and writes the result into
the working area where the renderer picks it up.
"""
import hashlib
import logging
import re
import shutil
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from laserdesk import config
from laserdesk.errors import ConfigurationError, TransientError, VerificationFailed
from laserdesk.models.order import Order, Side
from laserdesk.services.rules import ResolvedAssets

logger = logging.getLogger(__name__)

CUSTOMER_NAME_SHAPE = "{{CUSTOMER_NAME}}"
DESIGN_IMAGE_SHAPE = "{{DESIGN_IMAGE}}"


@dataclass
class GeneratedArtifact:
    path: Path
    copied_assets: List[Path] = field(default_factory=list)
    detected_color: Optional[str] = None


def _safe_filename(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", value)


def _order_key(order_id: str) -> str:
    """Filesystem-safe, collision-free stem for an order id.

    Ids that are already safe are used as is. Anything else is sanitized and
    suffixed with "~" and a short digest of the raw id; "~" never appears in a
    safe id, so "A/1" and "A_1" cannot share working-area files.
    """
    safe = _safe_filename(order_id)
    if safe == order_id:
        return safe
    digest = hashlib.sha1(order_id.encode("utf-8")).hexdigest()[:8]
    return f"{safe}~{digest}"


def _find_shapes(root: ET.Element, name: str) -> List[ET.Element]:
    return [shape for shape in root.iter("Shape") if shape.get("Name") == name]


class ArtifactGenerator:
    def __init__(self, templates_dir: Path = None, assets_dir: Path = None, work_dir: Path = None):
        self.templates_dir = Path(templates_dir or config.TEMPLATES_DIR)
        self.assets_dir = Path(assets_dir or config.ASSETS_DIR)
        self.work_dir = Path(work_dir or config.WORK_DIR)

    def output_path(self, order_id: str, side: Side, template_filename: str) -> Path:
        suffix = Path(template_filename).suffix or ".lbrn2"
        return self.work_dir / f"Order_{_order_key(order_id)}_{side.value}{suffix}"

    def _load_template(self, template_filename: str) -> ET.ElementTree:
        template_path = self.templates_dir / template_filename
        if not template_path.is_file():
            raise ConfigurationError(
                "TEMPLATE_FILE_NOT_FOUND",
                f'Template file "{template_filename}" not found at path: {template_path}',
            )
        try:
            return ET.parse(template_path)
        except ET.ParseError as e:
            raise ConfigurationError("TEMPLATE_INVALID", f'Template "{template_filename}" is not valid XML: {e}') from e

    def _copy_image(self, order: Order, side: Side, image_name: str) -> Path:
        source = self.assets_dir / image_name
        if not source.is_file():
            raise ConfigurationError("ASSET_FILE_NOT_FOUND", f'Image asset "{image_name}" not found at path: {source}')
        dest = self.work_dir / f"{_order_key(order.order_id)}_{side.value}_{_safe_filename(image_name)}"
        try:
            shutil.copy2(source, dest)
        except OSError as e:
            # a partial copy is not tracked by the caller
            dest.unlink(missing_ok=True)
            raise TransientError("ASSET_COPY_FAILED", f"Could not copy {source} to {dest}: {e}") from e
        logger.info("Image asset copied order_id=%s src=%s dest=%s", order.order_id, source, dest)
        return dest

    def generate(
        self,
        order: Order,
        side: Side,
        template_filename: str,
        name: str,
        assets: ResolvedAssets,
        copied_assets: List[Path],
    ) -> GeneratedArtifact:
        """Write the artifact for `order`/`side` and return where it went.

        Every file copied into the working area is appended to `copied_assets` as soon
        as it exists, so the caller can remove them if a later step fails.
        """
        tree = self._load_template(template_filename)
        root = tree.getroot()

        name_shapes = _find_shapes(root, CUSTOMER_NAME_SHAPE)
        if not name_shapes:
            raise ConfigurationError(
                "TEMPLATE_INVALID",
                f'Template "{template_filename}" does not contain a Shape with Name="{CUSTOMER_NAME_SHAPE}"',
            )
        for shape in name_shapes:
            shape.set("Str", name)
            if assets.font:
                shape.set("Font", assets.font)

        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransientError("WORK_DIR_UNAVAILABLE", f"Could not create {self.work_dir}: {e}") from e

        if assets.image:
            image_shapes = _find_shapes(root, DESIGN_IMAGE_SHAPE)
            if image_shapes:
                copied = self._copy_image(order, side, assets.image)
                copied_assets.append(copied)
                for shape in image_shapes:
                    # the renderer reloads from File only when the embedded data is cleared
                    shape.set("File", str(copied))
                    shape.set("Data", "")
                    shape.set("SourceHash", "0")
            else:
                logger.warning("Template %s has no %s shape; image %s ignored", template_filename, DESIGN_IMAGE_SHAPE, assets.image)

        out_path = self.output_path(order.order_id, side, template_filename)
        try:
            tree.write(out_path, encoding="utf-8", xml_declaration=True)
        except OSError as e:
            raise TransientError("ARTIFACT_WRITE_FAILED", f"Could not write {out_path}: {e}") from e

        logger.info("Artifact written order_id=%s side=%s path=%s", order.order_id, side.value, out_path)
        return GeneratedArtifact(path=out_path, copied_assets=list(copied_assets), detected_color=assets.color)


def verify_artifact(
    path: Path,
    min_bytes: int = None,
    settle_seconds: float = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Check that the artifact exists and is not empty or truncated."""
    min_bytes = config.MIN_ARTIFACT_BYTES if min_bytes is None else min_bytes
    settle_seconds = config.ARTIFACT_SETTLE_SECONDS if settle_seconds is None else settle_seconds
    if settle_seconds > 0:
        sleep(settle_seconds)

    path = Path(path)
    try:
        size = path.stat().st_size
    except FileNotFoundError as e:
        raise VerificationFailed(f"Artifact missing after render: {path}") from e
    except OSError as e:
        raise VerificationFailed(f"Artifact could not be inspected {path}: {e}") from e
    if size <= min_bytes:
        raise VerificationFailed(f"Artifact too small ({size} bytes, need more than {min_bytes}): {path}")
