"""
Tests for merge/compose and the deck assembler session.
"""

import json

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def make_page(label, color=(255, 255, 255)):
    """Create a distinct PNG page with a text label."""
    import cv2
    from slide_recon.images import encode_png

    img = np.zeros((360, 640, 3), dtype=np.uint8)
    img[:, :] = color
    cv2.putText(img, str(label), (40, 200), cv2.FONT_HERSHEY_SIMPLEX, 3, (0, 0, 0), 5)
    return encode_png(img)


def make_record(text="Hello"):
    from slide_recon.layout import PlacementRecord
    return PlacementRecord(
        text=text, x_pct=5.0, y_pct=10.0, w_pct=90.0, h_pct=10.0,
        font_face="Arial", font_size_pt=24, color_hex="000000", alignment="left",
    )


class FakeVisionService:
    """Implements both service contracts with per-page canned answers."""

    def __init__(self, layouts=None, failures=None):
        self.layouts = dict(layouts or {})
        self.failures = dict(failures or {})
        self.layout_calls = []
        self.restore_calls = []

    def analyze_layout(self, image, mime_type):
        self.layout_calls.append(image)
        error = self.failures.get(("layout", image))
        if error is not None:
            raise error
        return self.layouts.get(image, '{"textBlocks": []}')

    def restore_background(self, image, mime_type):
        self.restore_calls.append(image)
        error = self.failures.get(("restore", image))
        if error is not None:
            raise error
        return make_page("clean", color=(240, 240, 240))


class TestCompose:
    """Test the merge operation."""

    def test_pairs_every_page_in_order(self):
        """Test one pair per page in ascending order."""
        from slide_recon.assembler import compose

        placements = {1: [make_record("a")], 2: [make_record("b")], 3: []}
        backgrounds = {1: b"bg1", 2: b"bg2", 3: b"bg3"}

        pairs = compose(placements, backgrounds, [3, 1, 2])

        assert [p.page_index for p in pairs] == [1, 2, 3]
        assert [p.background for p in pairs] == [b"bg1", b"bg2", b"bg3"]
        assert pairs[0].placements[0].text == "a"
        assert pairs[2].placements == []

    def test_missing_entries_default(self):
        """Test that missing backgrounds and placements are not errors."""
        from slide_recon.assembler import BLANK_BACKGROUND, compose

        pairs = compose({2: [make_record()]}, {1: b"bg1", 2: None}, [1, 2, 3])

        assert len(pairs) == 3
        assert pairs[0].placements == []
        assert pairs[1].background == BLANK_BACKGROUND
        assert not pairs[1].has_background
        assert pairs[2].background == BLANK_BACKGROUND
        assert pairs[2].placements == []

    def test_duplicate_page_indices_collapse(self):
        """Test that the page order is treated as a set."""
        from slide_recon.assembler import compose

        pairs = compose({}, {}, [2, 2, 1])
        assert [p.page_index for p in pairs] == [1, 2]

    def test_pair_to_dict(self):
        """Test pair snapshot."""
        from slide_recon.assembler import AssemblyPair

        data = AssemblyPair(1, b"12345", [make_record("t")]).to_dict()
        assert data["background_bytes"] == 5
        assert data["placements"][0]["text"] == "t"


class TestDeckAssembler:
    """Test the session orchestration."""

    @pytest.fixture
    def pages(self):
        return [make_page(i) for i in range(1, 4)]

    def test_text_layer(self, pages):
        """Test extraction and mapping of every page."""
        from slide_recon.assembler import DeckAssembler

        service = FakeVisionService(layouts={
            pages[0]: '{"textBlocks": [{"text": "Title", "box_2d": [100, 50, 200, 950], "fontSize": 24}]}',
            pages[2]: "garbage",
        })
        assembler = DeckAssembler(service, pages)

        results = assembler.extract_text_layer()

        assert service.layout_calls == pages
        assert results[1].status == "ok"
        assert results[2].status == "empty"
        assert results[3].status == "degraded"
        layer = assembler.text_layer()
        assert len(layer) == 3
        assert layer[0][0].x_pct == pytest.approx(5.0)
        assert layer[1] == [] and layer[2] == []

    def test_extraction_failure_recorded(self, pages):
        """Test that a failed page does not abort the text layer."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.errors import ServiceError

        service = FakeVisionService(failures={("layout", pages[1]): ServiceError("down")})
        assembler = DeckAssembler(service, pages)

        results = assembler.extract_text_layer()

        assert results[2].is_failed
        assert "down" in results[2].diagnostic
        assert assembler.placements[2] == []
        assert len(service.layout_calls) == 3

    def test_extraction_authorization_propagates(self, pages):
        """Test that auth failures surface from text extraction."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.errors import AuthorizationRequired

        service = FakeVisionService(failures={
            ("layout", pages[0]): AuthorizationRequired("Requested entity was not found.")
        })
        with pytest.raises(AuthorizationRequired):
            DeckAssembler(service, pages).extract_text_layer()

    def test_placeholder_page_not_sent(self, pages):
        """Test that placeholder pages skip both services."""
        from slide_recon.assembler import BLANK_BACKGROUND, DeckAssembler

        service = FakeVisionService()
        assembler = DeckAssembler(service, [pages[0], None])

        assembler.extract_text_layer()
        result = assembler.restore_backgrounds()

        assert service.layout_calls == [pages[0]]
        assert service.restore_calls == [pages[0]]
        assert assembler.extractions[2].status == "empty"
        assert result.complete
        assert assembler.backgrounds()[2] == BLANK_BACKGROUND

    def test_compose_after_restoration(self, pages):
        """Test that the final pairs use restored backgrounds."""
        from slide_recon.assembler import DeckAssembler

        service = FakeVisionService()
        assembler = DeckAssembler(service, pages)
        assembler.extract_text_layer()
        assembler.restore_backgrounds()

        pairs = assembler.compose()

        assert assembler.restoration_complete
        assert [p.page_index for p in pairs] == [1, 2, 3]
        assert all(p.background != src for p, src in zip(pairs, pages))

    def test_page_subset_keeps_numbers(self, pages):
        """Test a session over selected pages of a larger document."""
        from slide_recon.assembler import DeckAssembler

        assembler = DeckAssembler(FakeVisionService(), pages[1:], page_numbers=[4, 9])
        assembler.extract_text_layer()
        assembler.restore_backgrounds()

        assert assembler.page_order == [4, 9]
        assert sorted(assembler.extractions) == [4, 9]
        assert [p.page_index for p in assembler.compose()] == [4, 9]
        assert len(assembler.text_layer()) == 2
        assert assembler.retry_background(9).complete

    def test_retry_background(self, pages):
        """Test retry of a single failed page through the session."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.errors import ServiceError
        from slide_recon.restoration import PageStatus

        service = FakeVisionService(failures={("restore", pages[2]): ServiceError("busy")})
        assembler = DeckAssembler(service, pages)

        result = assembler.restore_backgrounds()
        assert result.failed_pages == [3]
        assert not assembler.restoration_complete

        service.failures.clear()
        assembler.retry_background(3)

        assert assembler.restoration_complete
        assert assembler.pages[2].status == PageStatus.SUCCESS

    def test_authorization_state_tracked(self, pages):
        """Test that the session carries the authorization flag between runs."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.errors import AuthorizationRequired

        service = FakeVisionService(failures={
            ("restore", pages[0]): AuthorizationRequired("Requested entity was not found.")
        })
        assembler = DeckAssembler(service, pages)

        assembler.restore_backgrounds()
        assert assembler.paused
        assert assembler.authorization_required

        # No authorizer: the next run stays paused without calling the service
        assembler.restore_backgrounds()
        assert service.restore_calls == [pages[0]]
        assert assembler.paused

    def test_unknown_page(self, pages):
        """Test that an unknown page index is rejected."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.errors import InvalidInput

        assembler = DeckAssembler(FakeVisionService(), pages)
        with pytest.raises(InvalidInput):
            assembler.extract_page(7)

    def test_session_snapshot_is_json(self, pages, tmp_path):
        """Test that the session snapshot serializes."""
        from slide_recon.assembler import DeckAssembler
        from slide_recon.io import load_json, save_json

        assembler = DeckAssembler(FakeVisionService(), pages, source_file="deck.pdf")
        assembler.extract_text_layer()
        assembler.restore_backgrounds()

        path = save_json(assembler.to_dict(), tmp_path / "session.json")
        data = load_json(path)

        assert data["source_file"] == "deck.pdf"
        assert data["restoration_complete"] is True
        assert len(data["pages"]) == 3
        assert data["pages"][0]["restoration"]["restored"] is True
        assert data["pages"][0]["extraction"]["status"] == "empty"
        json.dumps(data)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
