"""
Layout mapping module for slide reconstruction.

Provides:
- Normalized bounding boxes (0-1000 coordinate space)
- Text block data model as returned by the layout extractor
- Placement records (percentage geometry + resolved styling)
- Script-aware font resolution

Mapping is pure: no I/O, deterministic, one placement per block.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Dict, Any, Iterable

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

NORMALIZED_SCALE = 1000
DEFAULT_FONT_SIZE_PT = 12
MIN_FONT_SIZE_PT = 6
# Largest size a PowerPoint run accepts
MAX_FONT_SIZE_PT = 4000
DEFAULT_COLOR_HEX = "000000"

# CJK Unified Ideographs, Extension A, Compatibility Ideographs
CJK_PATTERN = re.compile("[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")

CJK_SERIF_FACE = "PMingLiU"
CJK_SANS_FACE = "Microsoft JhengHei"


class FontFamily(Enum):
    """Font family classes reported by the layout service."""
    SANS_SERIF = "sans-serif"
    SERIF = "serif"
    MONOSPACE = "monospace"
    HANDWRITING = "handwriting"

    @classmethod
    def parse(cls, value: Any) -> Optional["FontFamily"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Alignment(Enum):
    """Horizontal text alignment."""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"

    @classmethod
    def parse(cls, value: Any) -> Optional["Alignment"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


WESTERN_FACES = {
    FontFamily.SANS_SERIF: "Arial",
    FontFamily.SERIF: "Times New Roman",
    FontFamily.MONOSPACE: "Courier New",
    FontFamily.HANDWRITING: "Segoe Script",
}


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class NormalizedBox:
    """Bounding box in the 0-1000 normalized page space."""
    y_min: int
    x_min: int
    y_max: int
    x_max: int

    def __post_init__(self):
        if not self.is_valid(self.y_min, self.x_min, self.y_max, self.x_max):
            raise ValueError(
                f"Invalid normalized box: {self.to_list()}"
            )

    @staticmethod
    def is_valid(y_min: int, x_min: int, y_max: int, x_max: int) -> bool:
        return (
            0 <= y_min < y_max <= NORMALIZED_SCALE and
            0 <= x_min < x_max <= NORMALIZED_SCALE
        )

    @classmethod
    def full_page(cls) -> "NormalizedBox":
        return cls(0, 0, NORMALIZED_SCALE, NORMALIZED_SCALE)

    @classmethod
    def from_sequence(cls, values: Any) -> "NormalizedBox":
        """
        Build a box from a [ymin, xmin, ymax, xmax] sequence.

        Anything malformed (wrong length, non-numeric, out of range,
        empty or inverted extent) falls back to the full-page box.
        """
        if not isinstance(values, (list, tuple)) or len(values) != 4:
            return cls.full_page()

        coords = []
        for v in values:
            # bool is an int subclass but never a coordinate
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                return cls.full_page()
            if not math.isfinite(v):
                return cls.full_page()
            coords.append(int(round(v)))

        if not cls.is_valid(*coords):
            logger.debug(f"Malformed box {list(values)}, using full page")
            return cls.full_page()
        return cls(*coords)

    @property
    def width(self) -> int:
        return self.x_max - self.x_min

    @property
    def height(self) -> int:
        return self.y_max - self.y_min

    def to_list(self) -> List[int]:
        return [self.y_min, self.x_min, self.y_max, self.x_max]


@dataclass(frozen=True)
class TextBlock:
    """One recognized text element with position and style."""
    text: str
    box: NormalizedBox
    font_size_pt: Optional[int] = None
    font_color_hex: Optional[str] = None
    font_family_class: Optional[FontFamily] = None
    alignment: Optional[Alignment] = None
    is_bold: bool = False
    is_italic: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "box_2d": self.box.to_list(),
            "fontSize": self.font_size_pt,
            "fontColor": self.font_color_hex,
            "fontFamilyType": (
                self.font_family_class.value if self.font_family_class else None
            ),
            "alignment": self.alignment.value if self.alignment else None,
            "isBold": self.is_bold,
            "isItalic": self.is_italic,
        }


@dataclass(frozen=True)
class PlacementRecord:
    """
    A text block in percentage-based slide coordinates with resolved styling.

    Text is top-aligned in its box with zero padding and no shrink-to-fit.
    """
    text: str
    x_pct: float
    y_pct: float
    w_pct: float
    h_pct: float
    font_face: str
    font_size_pt: int
    color_hex: str
    alignment: str
    bold: bool = False
    italic: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "x_pct": self.x_pct,
            "y_pct": self.y_pct,
            "w_pct": self.w_pct,
            "h_pct": self.h_pct,
            "font_face": self.font_face,
            "font_size_pt": self.font_size_pt,
            "color_hex": self.color_hex,
            "alignment": self.alignment,
            "bold": self.bold,
            "italic": self.italic,
        }


# ============================================================================
# Mapping
# ============================================================================

def contains_cjk(text: str) -> bool:
    """Check whether text contains any CJK ideograph."""
    return bool(text) and CJK_PATTERN.search(text) is not None


def resolve_font_face(text: str, family: Optional[FontFamily] = None) -> str:
    """
    Pick a font face for the text.

    Text containing any CJK ideograph always gets a CJK face; the
    family class then picks serif or gothic.
    """
    if contains_cjk(text):
        if family == FontFamily.SERIF:
            return CJK_SERIF_FACE
        return CJK_SANS_FACE
    return WESTERN_FACES.get(family, WESTERN_FACES[FontFamily.SANS_SERIF])


def normalize_color(color: Optional[str]) -> str:
    """Strip a leading '#'; absent or empty colors become black."""
    if not color:
        return DEFAULT_COLOR_HEX
    color = color.strip()
    if color.startswith("#"):
        color = color[1:]
    return color or DEFAULT_COLOR_HEX


def normalize_alignment(alignment: Optional[Alignment]) -> str:
    """Justify is not supported by the output format and becomes left."""
    if alignment is None or alignment == Alignment.JUSTIFY:
        return Alignment.LEFT.value
    return alignment.value


def normalize_font_size(size: Optional[int]) -> int:
    """Sizes below the minimum become the default; large sizes are capped."""
    if size is None or isinstance(size, bool):
        return DEFAULT_FONT_SIZE_PT
    if not isinstance(size, (int, float)) or not math.isfinite(size):
        return DEFAULT_FONT_SIZE_PT
    if size < MIN_FONT_SIZE_PT:
        return DEFAULT_FONT_SIZE_PT
    return int(min(size, MAX_FONT_SIZE_PT))


def box_to_percent(box: NormalizedBox) -> Tuple[float, float, float, float]:
    """Convert a normalized box to (x, y, w, h) percentages of the page."""
    factor = NORMALIZED_SCALE / 100
    return (
        box.x_min / factor,
        box.y_min / factor,
        box.width / factor,
        box.height / factor,
    )


def map_block(block: TextBlock) -> PlacementRecord:
    """Map a text block to its placement record."""
    x_pct, y_pct, w_pct, h_pct = box_to_percent(block.box)

    return PlacementRecord(
        text=block.text,
        x_pct=x_pct,
        y_pct=y_pct,
        w_pct=w_pct,
        h_pct=h_pct,
        font_face=resolve_font_face(block.text, block.font_family_class),
        font_size_pt=normalize_font_size(block.font_size_pt),
        color_hex=normalize_color(block.font_color_hex),
        alignment=normalize_alignment(block.alignment),
        bold=bool(block.is_bold),
        italic=bool(block.is_italic),
    )


def map_blocks(blocks: Iterable[TextBlock]) -> List[PlacementRecord]:
    """Map every block of a page, preserving order."""
    return [map_block(b) for b in blocks]

