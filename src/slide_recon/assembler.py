"""
Deck assembler module for slide reconstruction.

Provides:
- Merge/compose of restored backgrounds with mapped text placements
- Session orchestration (text layer, picture layer, final deck)
- Session snapshot for JSON output
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Any

from .errors import ExtractionFailed, InvalidInput
from .extractor import ExtractionResult, ExtractionStatus, LayoutExtractor
from .images import MIN_IMAGE_BYTES
from .layout import PlacementRecord, map_blocks
from .restoration import (
    AuthorizationPolicy,
    BatchResult,
    PageState,
    RestorationPipeline,
    is_batch_complete,
)

logger = logging.getLogger(__name__)


# Background used for pages without a restored or source image
BLANK_BACKGROUND = b""


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class AssemblyPair:
    """One page's background and text placements, ready for the writer."""
    page_index: int
    background: bytes
    placements: List[PlacementRecord] = field(default_factory=list)

    @property
    def has_background(self) -> bool:
        return bool(self.background)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_index": self.page_index,
            "background_bytes": len(self.background),
            "placements": [p.to_dict() for p in self.placements],
        }


# ============================================================================
# Merge / Compose
# ============================================================================

def compose(
    placements_by_page: Mapping[int, Sequence[PlacementRecord]],
    backgrounds_by_page: Mapping[int, Optional[bytes]],
    page_order: Sequence[int]
) -> List[AssemblyPair]:
    """
    Pair every page's background with its placements, ascending page order.

    Missing backgrounds become BLANK_BACKGROUND and missing placements an
    empty list; neither is an error here.
    """
    pairs = []
    for page_index in sorted(set(page_order)):
        background = backgrounds_by_page.get(page_index) or BLANK_BACKGROUND
        placements = list(placements_by_page.get(page_index) or [])
        pairs.append(AssemblyPair(page_index, background, placements))
    return pairs


# ============================================================================
# Deck Assembler
# ============================================================================

class DeckAssembler:
    """
    Orchestrates one document session.

    Coordinates:
    - Text layer extraction and layout mapping
    - Background restoration (batch and single-page retry)
    - Merge into assembly pairs for the writer
    """

    def __init__(
        self,
        service: Any,
        images: Sequence[Optional[bytes]],
        auth_policy: AuthorizationPolicy = AuthorizationPolicy.PAUSE,
        authorizer: Optional[Callable[[], bool]] = None,
        on_update: Optional[Callable[[PageState], None]] = None,
        source_file: str = "",
        min_image_bytes: int = MIN_IMAGE_BYTES,
        page_numbers: Optional[Sequence[int]] = None
    ):
        self.service = service
        self.auth_policy = AuthorizationPolicy(auth_policy)
        self.authorizer = authorizer
        self.on_update = on_update
        self.source_file = source_file
        self.min_image_bytes = min_image_bytes
        self.session_id = str(uuid.uuid4())
        self.created_at = datetime.now().isoformat()

        self.pages: List[PageState] = RestorationPipeline.create_pages(
            images, page_numbers=page_numbers
        )
        self.extractions: Dict[int, ExtractionResult] = {}
        self.placements: Dict[int, List[PlacementRecord]] = {}
        self.authorization_required = False
        self.paused = False

        self._extractor = None
        self._pipeline = None

    @property
    def extractor(self) -> LayoutExtractor:
        if self._extractor is None:
            self._extractor = LayoutExtractor(self.service, self.min_image_bytes)
        return self._extractor

    @property
    def pipeline(self) -> RestorationPipeline:
        if self._pipeline is None:
            self._pipeline = RestorationPipeline(
                self.service,
                policy=self.auth_policy,
                authorizer=self.authorizer,
                on_update=self.on_update,
            )
        return self._pipeline

    @property
    def page_order(self) -> List[int]:
        return [p.page_index for p in self.pages]

    @property
    def restoration_complete(self) -> bool:
        return is_batch_complete(self.pages)

    # ------------------------------------------------------------------------
    # Text layer
    # ------------------------------------------------------------------------

    def extract_page(self, page_index: int) -> ExtractionResult:
        """
        Extract and map the text layer of one page.

        A failed extraction is recorded as the page's result and can be
        re-run by calling this method again.
        """
        page = self._page(page_index)
        if not page.is_eligible:
            result = ExtractionResult(
                status=ExtractionStatus.EMPTY,
                diagnostic="Placeholder page has no raster content",
            )
        else:
            try:
                result = self.extractor.extract(page.source_image, page.mime_type)
            except ExtractionFailed as e:
                logger.warning(f"Page {page_index} text extraction failed: {e}")
                result = ExtractionResult(status=ExtractionStatus.FAILED, diagnostic=str(e))

        self.extractions[page_index] = result
        self.placements[page_index] = map_blocks(result.blocks)
        return result

    def extract_text_layer(self) -> Dict[int, ExtractionResult]:
        """Extract every page in order, one service call at a time."""
        start_time = time.time()
        for n, page in enumerate(self.pages, 1):
            logger.info(
                f"Analyzing text layout of page {page.page_index} ({n}/{len(self.pages)})"
            )
            self.extract_page(page.page_index)

        failed = [i for i, r in self.extractions.items() if r.is_failed]
        logger.info(
            f"Text layer extracted in {time.time() - start_time:.2f}s"
            + (f" (failed pages: {failed})" if failed else "")
        )
        return dict(self.extractions)

    # ------------------------------------------------------------------------
    # Picture layer
    # ------------------------------------------------------------------------

    def restore_backgrounds(
        self,
        should_continue: Optional[Callable[[PageState], bool]] = None
    ) -> BatchResult:
        """Run the restoration batch over all unfinished pages."""
        result = self.pipeline.run_batch(
            self.pages,
            authorization_required=self.authorization_required,
            should_continue=should_continue,
        )
        self._apply(result)
        return result

    def retry_background(self, page_index: int) -> BatchResult:
        """Re-run restoration of a single page."""
        result = self.pipeline.retry_one(
            self.pages,
            page_index,
            authorization_required=self.authorization_required,
        )
        self._apply(result)
        return result

    def _apply(self, result: BatchResult) -> None:
        self.pages = result.pages
        self.authorization_required = result.authorization_required
        self.paused = result.paused

    # ------------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------------

    def backgrounds(self) -> Dict[int, bytes]:
        """Current background of each page; placeholders map to the blank sentinel."""
        backgrounds = {}
        for page in self.pages:
            if not page.is_eligible:
                backgrounds[page.page_index] = BLANK_BACKGROUND
            else:
                backgrounds[page.page_index] = page.current_image
        return backgrounds

    def compose(self) -> List[AssemblyPair]:
        """Build the ordered assembly pairs for the final deck."""
        return compose(self.placements, self.backgrounds(), self.page_order)

    def text_layer(self) -> List[List[PlacementRecord]]:
        return [list(self.placements.get(i, [])) for i in self.page_order]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "source_file": self.source_file,
            "created_at": self.created_at,
            "authorization_required": self.authorization_required,
            "paused": self.paused,
            "restoration_complete": self.restoration_complete,
            "pages": [
                {
                    "restoration": page.to_dict(),
                    "extraction": (
                        self.extractions[page.page_index].to_dict()
                        if page.page_index in self.extractions else None
                    ),
                    "placements": [
                        p.to_dict() for p in self.placements.get(page.page_index, [])
                    ],
                }
                for page in self.pages
            ],
        }

    def _page(self, page_index: int) -> PageState:
        for page in self.pages:
            if page.page_index == page_index:
                return page
        raise InvalidInput(f"Unknown page index: {page_index}")
