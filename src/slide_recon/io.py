"""
Page loading and session persistence for slide reconstruction.

Handles:
- PDF rasterization into encoded page images
- Single images and image folders as page sources
- JSON snapshots of a session
"""

import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import List, Union, Optional, Any

from .images import pil_to_png, decode_image

logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp')

# 3.5x the 72 DPI PDF user space
DEFAULT_RENDER_DPI = 252

PathLike = Union[str, Path]


# ============================================================================
# Page Sources
# ============================================================================

def load_pdf(
    pdf_path: PathLike,
    dpi: int = DEFAULT_RENDER_DPI,
    first_page: Optional[int] = None,
    last_page: Optional[int] = None
) -> List[bytes]:
    """
    Render every PDF page to a PNG payload with pdf2image.

    first_page/last_page are 1-indexed and inclusive; None means the
    document's own bounds.

    Raises:
        FileNotFoundError: Missing PDF
        ImportError: pdf2image not installed
        RuntimeError: Unreadable PDF or poppler missing
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.is_file():
        raise FileNotFoundError(f"No PDF at {pdf_path}")

    try:
        from pdf2image import convert_from_path
        from pdf2image.exceptions import (
            PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
        )
    except ImportError:
        raise ImportError(
            "PDF input needs pdf2image: pip install pdf2image "
            "(plus the poppler utilities for your platform)"
        )

    logger.info(f"Rendering {pdf_path.name} at {dpi} DPI")
    try:
        rendered = convert_from_path(
            pdf_path, dpi=dpi, first_page=first_page, last_page=last_page
        )
    except PDFInfoNotInstalledError as e:
        raise RuntimeError(
            "poppler not found (brew install poppler / apt-get install poppler-utils)"
        ) from e
    except (PDFPageCountError, PDFSyntaxError) as e:
        raise RuntimeError(f"Cannot read {pdf_path.name}: {e}") from e

    pages = [pil_to_png(page.convert("RGB")) for page in rendered]
    logger.info(f"{pdf_path.name}: {len(pages)} page(s) rendered")
    return pages


def load_image(image_path: PathLike) -> bytes:
    """
    Read an encoded image as-is after checking that OpenCV can decode it.

    Raises:
        FileNotFoundError: Missing file
        ValueError: Bytes are not a decodable raster
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise FileNotFoundError(f"No image at {image_path}")

    data = image_path.read_bytes()
    if decode_image(data) is None:
        raise ValueError(f"Not a decodable image: {image_path.name}")
    return data


def load_images_from_folder(
    folder: PathLike,
    extensions: tuple = IMAGE_EXTENSIONS
) -> List[Optional[bytes]]:
    """
    One page per image file, ordered by file name.

    An unreadable file keeps its slot as None (a placeholder page) so
    page numbers line up with the listing.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise NotADirectoryError(str(folder))

    files = sorted(p for p in folder.iterdir() if p.suffix.lower() in extensions)
    logger.info(f"{folder}: {len(files)} image file(s)")

    pages: List[Optional[bytes]] = []
    for path in files:
        try:
            pages.append(load_image(path))
        except ValueError as e:
            logger.warning(f"Placeholder for {path.name}: {e}")
            pages.append(None)
    return pages


def detect_input_type(input_path: PathLike) -> str:
    """Classify an input as 'pdf', 'image', 'image_folder' or 'unknown'."""
    input_path = Path(input_path)

    if input_path.is_dir():
        if any(p.suffix.lower() in IMAGE_EXTENSIONS for p in input_path.iterdir()):
            return 'image_folder'
        return 'unknown'
    if not input_path.is_file():
        return 'unknown'

    suffix = input_path.suffix.lower()
    if suffix == '.pdf':
        return 'pdf'
    if suffix in IMAGE_EXTENSIONS:
        return 'image'
    return 'unknown'


def load_pages(input_path: PathLike, dpi: int = DEFAULT_RENDER_DPI) -> List[Optional[bytes]]:
    """Load the pages of a PDF, a single image, or a folder of images."""
    kind = detect_input_type(input_path)
    logger.info(f"Input {input_path} detected as {kind}")

    if kind == 'pdf':
        return load_pdf(input_path, dpi=dpi)
    if kind == 'image':
        return [load_image(input_path)]
    if kind == 'image_folder':
        return load_images_from_folder(input_path)
    raise ValueError(f"Unsupported input: {input_path}")


# ============================================================================
# Session Snapshots
# ============================================================================

class SessionJSONEncoder(json.JSONEncoder):
    """Encode pipeline records; image payloads become their byte count."""

    def default(self, obj):
        if is_dataclass(obj) and not isinstance(obj, type):
            to_dict = getattr(obj, 'to_dict', None)
            return to_dict() if to_dict is not None else asdict(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (bytes, bytearray)):
            return {"bytes": len(obj)}
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(data: Any, output_path: PathLike, indent: int = 2) -> Path:
    """Write a UTF-8 JSON snapshot, creating parent directories."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(data, indent=indent, ensure_ascii=False, cls=SessionJSONEncoder),
        encoding='utf-8',
    )
    logger.debug(f"Snapshot written: {output_path}")
    return output_path


def load_json(json_path: PathLike) -> Any:
    json_path = Path(json_path)
    if not json_path.is_file():
        raise FileNotFoundError(f"No JSON file at {json_path}")
    return json.loads(json_path.read_text(encoding='utf-8'))


def ensure_dir(path: PathLike) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
