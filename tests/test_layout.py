"""
Tests for the layout mapping module.
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def make_block(text="Hello", box=(0, 0, 1000, 1000), **kwargs):
    from slide_recon.layout import NormalizedBox, TextBlock
    return TextBlock(text=text, box=NormalizedBox(*box), **kwargs)


class TestNormalizedBox:
    """Test NormalizedBox class."""

    def test_box_creation(self):
        """Test box creation and computed extent."""
        from slide_recon.layout import NormalizedBox

        box = NormalizedBox(100, 50, 200, 950)

        assert box.y_min == 100
        assert box.x_min == 50
        assert box.width == 900
        assert box.height == 100
        assert box.to_list() == [100, 50, 200, 950]

    def test_invalid_box_rejected(self):
        """Test that direct construction enforces the box invariant."""
        from slide_recon.layout import NormalizedBox

        with pytest.raises(ValueError):
            NormalizedBox(200, 0, 100, 1000)
        with pytest.raises(ValueError):
            NormalizedBox(0, 0, 1001, 1000)

    @pytest.mark.parametrize("values", [
        None,
        [],
        [1, 2, 3],
        [0, 0, 1000, 1000, 5],
        "0,0,10,10",
        [100, 100, 100, 200],  # zero height
        [500, 0, 100, 1000],   # inverted
        [-5, 0, 100, 100],
        [0, 0, 100, 1200],
        [0, "a", 100, 100],
        [True, 0, 100, 100],
        [float("inf"), 0, 100, 100],
        [0, 0, float("nan"), 100],
    ])
    def test_malformed_sequence_defaults_to_full_page(self, values):
        """Test that malformed boxes fall back to the full page."""
        from slide_recon.layout import NormalizedBox

        assert NormalizedBox.from_sequence(values) == NormalizedBox.full_page()

    def test_float_coordinates_rounded(self):
        """Test that float coordinates are rounded to integers."""
        from slide_recon.layout import NormalizedBox

        box = NormalizedBox.from_sequence([10.4, 20.6, 100.0, 200.2])
        assert box.to_list() == [10, 21, 100, 200]


class TestCoordinateMapping:
    """Test percentage geometry."""

    def test_title_example(self):
        """Test the reference title block mapping."""
        from slide_recon.layout import map_block

        record = map_block(make_block("Title", (100, 50, 200, 950), font_size_pt=24))

        assert record.x_pct == pytest.approx(5.0)
        assert record.y_pct == pytest.approx(10.0)
        assert record.w_pct == pytest.approx(90.0)
        assert record.h_pct == pytest.approx(10.0)
        assert record.font_size_pt == 24
        assert record.color_hex == "000000"
        assert record.alignment == "left"

    @pytest.mark.parametrize("box", [
        (0, 0, 1000, 1000),
        (0, 0, 1, 1),
        (999, 999, 1000, 1000),
        (123, 456, 789, 987),
        (1, 998, 999, 1000),
    ])
    def test_box_stays_on_page(self, box):
        """Test that mapped boxes never leave the page and have positive size."""
        from slide_recon.layout import map_block

        record = map_block(make_block(box=box))

        assert record.x_pct + record.w_pct <= 100.0 + 1e-9
        assert record.y_pct + record.h_pct <= 100.0 + 1e-9
        assert record.w_pct > 0
        assert record.h_pct > 0
        assert 0.0 <= record.x_pct <= 100.0
        assert 0.0 <= record.y_pct <= 100.0

    def test_map_blocks_preserves_order(self):
        """Test that a page's blocks map one-to-one in order."""
        from slide_recon.layout import map_blocks

        blocks = [make_block("A"), make_block("B"), make_block("C")]
        records = map_blocks(blocks)

        assert [r.text for r in records] == ["A", "B", "C"]


class TestDefaults:
    """Test default injection for size, color and alignment."""

    @pytest.mark.parametrize("size,expected", [
        (None, 12),
        (4, 12),
        (5, 12),
        (6, 6),
        (18, 18),
    ])
    def test_font_size_fallback(self, size, expected):
        """Test font size fallback below the minimum."""
        from slide_recon.layout import map_block

        assert map_block(make_block(font_size_pt=size)).font_size_pt == expected

    @pytest.mark.parametrize("size,expected", [
        (4000, 4000),
        (5000, 4000),
        (10 ** 9, 4000),
        (float("inf"), 12),
        (float("nan"), 12),
    ])
    def test_font_size_capped(self, size, expected):
        """Test that oversized and non-finite sizes stay in a writable range."""
        from slide_recon.layout import MAX_FONT_SIZE_PT, map_block

        mapped = map_block(make_block(font_size_pt=size)).font_size_pt
        assert mapped == expected
        assert mapped <= MAX_FONT_SIZE_PT

    @pytest.mark.parametrize("color,expected", [
        ("#FF0000", "FF0000"),
        ("00AACC", "00AACC"),
        (None, "000000"),
        ("", "000000"),
        ("#", "000000"),
    ])
    def test_color_normalization(self, color, expected):
        """Test leading hash stripping and black default."""
        from slide_recon.layout import map_block

        assert map_block(make_block(font_color_hex=color)).color_hex == expected

    def test_alignment_coercion(self):
        """Test that justify becomes left and others pass through."""
        from slide_recon.layout import Alignment, map_block

        assert map_block(make_block(alignment=Alignment.JUSTIFY)).alignment == "left"
        assert map_block(make_block(alignment=Alignment.LEFT)).alignment == "left"
        assert map_block(make_block(alignment=Alignment.CENTER)).alignment == "center"
        assert map_block(make_block(alignment=Alignment.RIGHT)).alignment == "right"
        assert map_block(make_block(alignment=None)).alignment == "left"

    def test_style_flags_carried(self):
        """Test bold/italic pass-through."""
        from slide_recon.layout import map_block

        record = map_block(make_block(is_bold=True, is_italic=True))
        assert record.bold is True
        assert record.italic is True

        plain = map_block(make_block())
        assert plain.bold is False
        assert plain.italic is False


class TestFontResolution:
    """Test script-aware font selection."""

    def test_cjk_serif(self):
        """Test that CJK serif text gets the Ming-style face."""
        from slide_recon.layout import (
            CJK_SERIF_FACE, FontFamily, WESTERN_FACES, map_block
        )

        record = map_block(make_block("你好", font_family_class=FontFamily.SERIF))

        assert record.font_face == CJK_SERIF_FACE
        assert record.font_face != WESTERN_FACES[FontFamily.SERIF]

    def test_western_serif(self):
        """Test that Latin serif text gets the Western serif face."""
        from slide_recon.layout import FontFamily, WESTERN_FACES, map_block

        record = map_block(make_block("Hello", font_family_class=FontFamily.SERIF))
        assert record.font_face == WESTERN_FACES[FontFamily.SERIF]

    @pytest.mark.parametrize("family", [
        None, "sans-serif", "monospace", "handwriting",
    ])
    def test_cjk_non_serif_uses_gothic(self, family):
        """Test that every non-serif class maps CJK text to the Gothic face."""
        from slide_recon.layout import CJK_SANS_FACE, FontFamily, resolve_font_face

        assert resolve_font_face("資料分析 2024", FontFamily.parse(family)) == CJK_SANS_FACE

    def test_western_classes(self):
        """Test Western faces per class."""
        from slide_recon.layout import FontFamily, resolve_font_face

        assert resolve_font_face("abc", None) == "Arial"
        assert resolve_font_face("abc", FontFamily.SANS_SERIF) == "Arial"
        assert resolve_font_face("abc", FontFamily.MONOSPACE) == "Courier New"
        assert resolve_font_face("abc", FontFamily.HANDWRITING) == "Segoe Script"

    def test_mixed_script_counts_as_cjk(self):
        """Test that a single ideograph switches to the CJK face."""
        from slide_recon.layout import contains_cjk

        assert contains_cjk("Revenue 營收") is True
        assert contains_cjk("Revenue") is False
        assert contains_cjk("") is False

    def test_mapping_is_deterministic(self):
        """Test that identical blocks map to identical records."""
        from slide_recon.layout import FontFamily, map_block

        block = make_block("同一", (10, 10, 20, 20), font_family_class=FontFamily.SERIF)
        assert map_block(block) == map_block(block)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
