"""
Core modules of the slide reconstruction pipeline.
"""

from .errors import (
    SlideReconError, InvalidInput, ServiceError, ExtractionFailed,
    RestorationRefused, AuthorizationRequired,
)
from .layout import (
    NormalizedBox, TextBlock, PlacementRecord, FontFamily, Alignment,
    map_block, map_blocks, resolve_font_face,
)
from .extractor import LayoutExtractor, ExtractionResult, ExtractionStatus
from .restoration import (
    RestorationPipeline, PageState, PageStatus, AuthorizationPolicy,
    BatchResult, is_batch_complete,
)
from .assembler import DeckAssembler, AssemblyPair, compose, BLANK_BACKGROUND
from .export import SlideDeckWriter, DeckExporter
from .vision import GeminiVisionClient
from .io import load_pages, load_pdf, load_image, save_json, ensure_dir

__all__ = [
    # Errors
    "SlideReconError", "InvalidInput", "ServiceError", "ExtractionFailed",
    "RestorationRefused", "AuthorizationRequired",
    # Layout
    "NormalizedBox", "TextBlock", "PlacementRecord", "FontFamily", "Alignment",
    "map_block", "map_blocks", "resolve_font_face",
    # Extraction
    "LayoutExtractor", "ExtractionResult", "ExtractionStatus",
    # Restoration
    "RestorationPipeline", "PageState", "PageStatus", "AuthorizationPolicy",
    "BatchResult", "is_batch_complete",
    # Assembly and export
    "DeckAssembler", "AssemblyPair", "compose", "BLANK_BACKGROUND",
    "SlideDeckWriter", "DeckExporter",
    # Services and IO
    "GeminiVisionClient",
    "load_pages", "load_pdf", "load_image", "save_json", "ensure_dir",
]
