"""
Layout extraction adapter for slide reconstruction.

Sends one rasterized page to the layout service and validates the
structured response into TextBlocks.

A payload that cannot be parsed degrades to zero blocks instead of
failing the page; the result's status tells the caller which case
happened.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Any, Dict, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import AuthorizationRequired, ExtractionFailed, InvalidInput, ServiceError
from .images import MIN_IMAGE_BYTES
from .layout import Alignment, FontFamily, NormalizedBox, TextBlock

logger = logging.getLogger(__name__)


class LayoutService(Protocol):
    def analyze_layout(self, image: bytes, mime_type: str) -> Optional[str]: ...


# ============================================================================
# Response Schema
# ============================================================================

class RawTextBlock(BaseModel):
    """One text block as the layout service reports it."""
    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    text: str = ""
    box_2d: NormalizedBox = Field(default_factory=NormalizedBox.full_page)
    fontSize: Optional[int] = None
    fontColor: Optional[str] = None
    fontFamilyType: Optional[FontFamily] = None
    alignment: Optional[Alignment] = None
    isBold: bool = False
    isItalic: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("box_2d", mode="before")
    @classmethod
    def _coerce_box(cls, v):
        if isinstance(v, NormalizedBox):
            return v
        return NormalizedBox.from_sequence(v)

    @field_validator("fontSize", mode="before")
    @classmethod
    def _coerce_size(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        if not math.isfinite(v):
            return None
        return int(round(v))

    @field_validator("fontColor", mode="before")
    @classmethod
    def _coerce_color(cls, v):
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()

    @field_validator("fontFamilyType", mode="before")
    @classmethod
    def _coerce_family(cls, v):
        return FontFamily.parse(v)

    @field_validator("alignment", mode="before")
    @classmethod
    def _coerce_alignment(cls, v):
        return Alignment.parse(v)

    @field_validator("isBold", "isItalic", mode="before")
    @classmethod
    def _coerce_flag(cls, v):
        return v if isinstance(v, bool) else False

    def to_text_block(self) -> TextBlock:
        return TextBlock(
            text=self.text,
            box=self.box_2d,
            font_size_pt=self.fontSize,
            font_color_hex=self.fontColor,
            font_family_class=self.fontFamilyType,
            alignment=self.alignment,
            is_bold=self.isBold,
            is_italic=self.isItalic,
        )


class LayoutResponse(BaseModel):
    """Top-level layout payload: {"textBlocks": [...]}."""
    model_config = ConfigDict(extra="ignore")

    textBlocks: List[Any] = Field(default_factory=list)

    @field_validator("textBlocks", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v


# ============================================================================
# Result
# ============================================================================

class ExtractionStatus:
    """Extraction outcome identifiers."""
    OK = "ok"
    EMPTY = "empty"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class ExtractionResult:
    """Text blocks of one page plus how they were obtained."""
    blocks: List[TextBlock] = field(default_factory=list)
    status: str = ExtractionStatus.OK
    diagnostic: Optional[str] = None
    dropped: int = 0

    @property
    def is_degraded(self) -> bool:
        return self.status == ExtractionStatus.DEGRADED

    @property
    def is_failed(self) -> bool:
        return self.status == ExtractionStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "diagnostic": self.diagnostic,
            "dropped": self.dropped,
            "blocks": [b.to_dict() for b in self.blocks],
        }


def parse_layout_response(payload: str) -> ExtractionResult:
    """
    Validate a layout JSON payload into an ExtractionResult.

    Unparseable payloads yield a degraded result with zero blocks.
    Individual blocks that are not objects or have no text are dropped.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as e:
        return _degraded(f"Response is not valid JSON: {e}")

    if not isinstance(data, dict):
        return _degraded(f"Expected a JSON object, got {type(data).__name__}")

    try:
        response = LayoutResponse.model_validate(data)
    except ValidationError as e:
        return _degraded(f"'textBlocks' does not match the schema: {e.errors()[0]['msg']}")

    blocks = []
    dropped = 0
    for item in response.textBlocks:
        try:
            raw = RawTextBlock.model_validate(item)
        except ValidationError as e:
            logger.debug(f"Dropping invalid text block {item!r}: {e}")
            dropped += 1
            continue
        if not raw.text.strip():
            dropped += 1
            continue
        blocks.append(raw.to_text_block())

    if dropped:
        logger.warning(f"Dropped {dropped} invalid text block(s)")

    status = ExtractionStatus.OK if blocks else ExtractionStatus.EMPTY
    return ExtractionResult(blocks=blocks, status=status, dropped=dropped)


def _degraded(reason: str) -> ExtractionResult:
    logger.warning(f"Layout response degraded to zero blocks: {reason}")
    return ExtractionResult(status=ExtractionStatus.DEGRADED, diagnostic=reason)


# ============================================================================
# Adapter
# ============================================================================

class LayoutExtractor:
    """
    Extract text blocks from one page through the layout service.

    One service call per page; no retries here (callers re-invoke).
    """

    def __init__(self, service: LayoutService, min_image_bytes: int = MIN_IMAGE_BYTES):
        self.service = service
        self.min_image_bytes = min_image_bytes

    def extract(self, page_image: bytes, mime_type: str = "image/png") -> ExtractionResult:
        """
        Extract the text blocks of a page image.

        Raises:
            InvalidInput: If the image is missing or too small
            ExtractionFailed: If the service fails or returns no payload
            AuthorizationRequired: If the service reports an auth failure
        """
        if not page_image or len(page_image) < self.min_image_bytes:
            size = len(page_image) if page_image else 0
            raise InvalidInput(
                f"Invalid image data: {size} bytes (minimum {self.min_image_bytes})"
            )
        if not mime_type or not mime_type.strip():
            raise InvalidInput("Image MIME type is required")

        try:
            payload = self.service.analyze_layout(page_image, mime_type)
        except AuthorizationRequired:
            raise
        except ServiceError as e:
            raise ExtractionFailed(f"Layout service failed: {e}") from e

        if payload is None or not str(payload).strip():
            raise ExtractionFailed("Empty response from layout service")

        result = parse_layout_response(payload)
        logger.info(
            f"Extracted {len(result.blocks)} text blocks (status: {result.status})"
        )
        return result
