"""
Export module for slide reconstruction.

Provides:
- Text layer deck (text boxes only)
- Picture layer deck (full-bleed backgrounds only)
- Final deck (background first, text boxes on top)

All decks are written with python-pptx on a 16:9 slide.
"""

import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union, Any

from .assembler import AssemblyPair
from .layout import (
    DEFAULT_COLOR_HEX, MAX_FONT_SIZE_PT, MIN_FONT_SIZE_PT, PlacementRecord, contains_cjk
)

logger = logging.getLogger(__name__)


TEXT_LAYER_SUFFIX = "_Text_layer"
PICTURE_LAYER_SUFFIX = "_Picture_layer"
FINAL_SUFFIX = "_Final"

# Index of the "Blank" layout in the default template
BLANK_LAYOUT_INDEX = 6


def _import_pptx():
    try:
        import pptx
    except ImportError:
        raise ImportError(
            "python-pptx is required for slide export. "
            "Install with: pip install python-pptx"
        )
    return pptx


# ============================================================================
# Slide Deck Writer
# ============================================================================

class SlideDeckWriter:
    """Write slides from assembly pairs using python-pptx."""

    def __init__(
        self,
        slide_width_inches: float = 10.0,
        slide_height_inches: float = 5.625
    ):
        self.slide_width_inches = slide_width_inches
        self.slide_height_inches = slide_height_inches

    def new_presentation(self):
        pptx = _import_pptx()
        from pptx.util import Inches

        prs = pptx.Presentation()
        prs.slide_width = Inches(self.slide_width_inches)
        prs.slide_height = Inches(self.slide_height_inches)
        return prs

    def add_slide(
        self,
        prs: Any,
        background: Optional[bytes] = None,
        placements: Sequence[PlacementRecord] = ()
    ):
        """
        Add one slide: the full-bleed background first, then text boxes.

        An empty background (the blank sentinel) adds no picture.
        """
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT_INDEX])

        if background:
            slide.shapes.add_picture(
                io.BytesIO(background), 0, 0,
                width=prs.slide_width, height=prs.slide_height
            )

        for record in placements:
            self.add_text_box(prs, slide, record)
        return slide

    def add_text_box(self, prs: Any, slide: Any, record: PlacementRecord):
        """Place one text box: top-anchored, zero margins, no autofit."""
        from pptx.dml.color import RGBColor
        from pptx.enum.text import MSO_ANCHOR, MSO_AUTO_SIZE, PP_ALIGN
        from pptx.util import Pt

        alignments = {
            "left": PP_ALIGN.LEFT,
            "center": PP_ALIGN.CENTER,
            "right": PP_ALIGN.RIGHT,
        }

        left = _pct_to_emu(prs.slide_width, record.x_pct)
        top = _pct_to_emu(prs.slide_height, record.y_pct)
        width = _pct_to_emu(prs.slide_width, record.w_pct)
        height = _pct_to_emu(prs.slide_height, record.h_pct)

        shape = slide.shapes.add_textbox(left, top, width, height)
        frame = shape.text_frame
        frame.word_wrap = True
        frame.auto_size = MSO_AUTO_SIZE.NONE
        frame.vertical_anchor = MSO_ANCHOR.TOP
        frame.margin_left = frame.margin_right = 0
        frame.margin_top = frame.margin_bottom = 0
        frame.text = record.text

        color = _parse_color(record.color_hex, RGBColor)
        east_asian = contains_cjk(record.text)

        for paragraph in frame.paragraphs:
            paragraph.alignment = alignments.get(record.alignment, PP_ALIGN.LEFT)
            for run in paragraph.runs:
                font = run.font
                font.size = Pt(_clamp_size(record.font_size_pt))
                font.bold = record.bold
                font.italic = record.italic
                font.color.rgb = color
                font.name = record.font_face
                if east_asian:
                    _set_east_asian_typeface(run, record.font_face)
        return shape

    def write_text_layer(
        self,
        pages: Sequence[Sequence[PlacementRecord]],
        output_path: Union[str, Path]
    ) -> Path:
        """One slide per page with text boxes only."""
        prs = self.new_presentation()
        for placements in pages:
            self.add_slide(prs, None, placements)
        return self._save(prs, output_path)

    def write_picture_layer(
        self,
        backgrounds: Sequence[bytes],
        output_path: Union[str, Path]
    ) -> Path:
        """One slide per page that has a background image."""
        prs = self.new_presentation()
        for background in backgrounds:
            if background:
                self.add_slide(prs, background)
        return self._save(prs, output_path)

    def write_final(
        self,
        pairs: Sequence[AssemblyPair],
        output_path: Union[str, Path]
    ) -> Path:
        """One slide per assembly pair, in the given order."""
        prs = self.new_presentation()
        for pair in pairs:
            self.add_slide(prs, pair.background, pair.placements)
        return self._save(prs, output_path)

    def _save(self, prs: Any, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        prs.save(str(output_path))
        logger.info(f"Exported {len(prs.slides)} slide(s) to: {output_path}")
        return output_path


def _pct_to_emu(total: int, pct: float) -> int:
    return int(round(total * pct / 100.0))


def _clamp_size(size_pt: int) -> int:
    return max(MIN_FONT_SIZE_PT, min(int(size_pt), MAX_FONT_SIZE_PT))


def _parse_color(color_hex: str, rgb_cls):
    try:
        return rgb_cls.from_string(color_hex)
    except (ValueError, TypeError):
        logger.warning(f"Invalid color '{color_hex}', using {DEFAULT_COLOR_HEX}")
        return rgb_cls.from_string(DEFAULT_COLOR_HEX)


def _set_east_asian_typeface(run: Any, face: str) -> None:
    # font.name only sets <a:latin>; CJK glyphs are looked up in <a:ea>
    from pptx.oxml.ns import qn

    rPr = run._r.get_or_add_rPr()
    ea = rPr.find(qn("a:ea"))
    if ea is None:
        ea = rPr.makeelement(qn("a:ea"), {})
        latin = rPr.find(qn("a:latin"))
        if latin is not None:
            latin.addnext(ea)
        else:
            rPr.append(ea)
    ea.set("typeface", face)


# ============================================================================
# Deck Exporter
# ============================================================================

class DeckExporter:
    """Convenience class for writing the checkpoint decks of a session."""

    FORMATS = ("text", "picture", "final")

    def __init__(
        self,
        output_dir: Union[str, Path],
        base_name: str = "Presentation",
        writer: Optional[SlideDeckWriter] = None
    ):
        self.output_dir = Path(output_dir)
        self.base_name = base_name
        self.writer = writer or SlideDeckWriter()

    def path_for(self, fmt: str) -> Path:
        suffixes = {
            "text": TEXT_LAYER_SUFFIX,
            "picture": PICTURE_LAYER_SUFFIX,
            "final": FINAL_SUFFIX,
        }
        if fmt not in suffixes:
            raise ValueError(f"Unknown deck format: {fmt}")
        return self.output_dir / f"{self.base_name}{suffixes[fmt]}.pptx"

    def export(
        self,
        assembler: Any,
        formats: Optional[List[str]] = None
    ) -> Dict[str, Path]:
        """
        Export the requested decks of a DeckAssembler session.

        Args:
            assembler: DeckAssembler with extracted and/or restored pages
            formats: Any of 'text', 'picture', 'final' or 'all'

        Returns:
            Dictionary mapping format to output path
        """
        if formats is None or "all" in formats:
            formats = list(self.FORMATS)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        results = {}

        if "text" in formats:
            results["text"] = self.writer.write_text_layer(
                assembler.text_layer(), self.path_for("text")
            )

        if "picture" in formats:
            backgrounds = assembler.backgrounds()
            results["picture"] = self.writer.write_picture_layer(
                [backgrounds[i] for i in assembler.page_order],
                self.path_for("picture"),
            )

        if "final" in formats:
            results["final"] = self.writer.write_final(
                assembler.compose(), self.path_for("final")
            )

        return results
