"""
Gemini vision client for slide reconstruction.

Implements both external service contracts used by the pipeline:
- Layout analysis: page image -> JSON text-block payload
- Background restoration: page image -> text-free background image

SDK and transport errors are translated into the pipeline's error
taxonomy here, so the rest of the package never sees google-genai types.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .errors import (
    AuthorizationRequired,
    RestorationRefused,
    ServiceError,
    is_authorization_failure,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Prompts and Schema
# ============================================================================

LAYOUT_PROMPT = """You are a desktop publishing specialist converting a 16:9 presentation page into an editable slide.
Find EVERY piece of text on the page, including:
1. Titles, subtitles and headings.
2. Body text, bullet points and paragraphs.
3. Text inside tables (every cell), charts and diagrams.
4. Captions, small labels, names and identifiers next to icons or avatars.
5. Content of information boxes, panels, speech bubbles and banners.

Return a JSON object with a 'textBlocks' array. Each block must have the 'text' content,
'box_2d' as [ymin, xmin, ymax, xmax] on a 0-1000 scale, 'fontSize' in points,
'fontColor' as hex, 'fontFamilyType', 'alignment', 'isBold' and 'isItalic'."""

RESTORATION_PROMPT = """Turn this content-filled slide into a BLANK TEMPLATE.

Rules:
1. BACKGROUND COLOR: keep the original background color of THIS image. A white or light gray page stays white or light gray. Never borrow colors from other themes.
2. TEXT: erase every character (CJK, Latin, digits) in titles, footers, charts and diagrams.
3. TABLES: keep all grid lines and cell borders, but leave every cell empty in its own background color.
4. PANELS: remove text from boxes and panels, keep their shapes and borders.
5. LABELS: remove numbering and descriptions next to icons.

Keep icons, avatars, arrows and illustrations. In-paint smoothly with no blur, ghosting or color leakage."""

LAYOUT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "textBlocks": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING"},
                    "box_2d": {"type": "ARRAY", "items": {"type": "INTEGER"}},
                    "fontSize": {"type": "INTEGER"},
                    "fontColor": {"type": "STRING"},
                    "fontFamilyType": {
                        "type": "STRING",
                        "enum": ["sans-serif", "serif", "monospace", "handwriting"],
                    },
                    "alignment": {
                        "type": "STRING",
                        "enum": ["left", "center", "right", "justify"],
                    },
                    "isBold": {"type": "BOOLEAN"},
                    "isItalic": {"type": "BOOLEAN"},
                },
            },
        },
    },
}


# ============================================================================
# Client
# ============================================================================

@dataclass
class RestoredImage:
    """Image returned by the restoration service."""
    data: bytes
    mime_type: str = "image/png"


class GeminiVisionClient:
    """
    Thin wrapper around the google-genai client.

    Supports:
    - Structured layout analysis (JSON response schema)
    - Image generation for background restoration
    - Re-authorization with a replacement API key
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        layout_model: str = "gemini-3-flash-preview",
        restoration_model: str = "gemini-3-pro-image-preview",
        aspect_ratio: str = "16:9",
        image_size: str = "1K",
        timeout_seconds: Optional[float] = 120.0,
        client: Any = None
    ):
        self.api_key = api_key
        self.layout_model = layout_model
        self.restoration_model = restoration_model
        self.aspect_ratio = aspect_ratio
        self.image_size = image_size
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self):
        try:
            from google import genai
            from google.genai import types
        except ImportError:
            raise ImportError(
                "google-genai is required for the Gemini vision client. "
                "Install with: pip install google-genai"
            )

        http_options = None
        if self.timeout_seconds:
            # HttpOptions.timeout is in milliseconds
            http_options = types.HttpOptions(timeout=int(self.timeout_seconds * 1000))
        return genai.Client(api_key=self.api_key, http_options=http_options)

    def reauthorize(self, api_key: str) -> None:
        """Switch to a new API key; the SDK client is rebuilt lazily."""
        self.api_key = api_key
        self._client = None
        logger.info("Vision client re-authorized with a new API key")

    # ------------------------------------------------------------------------
    # Service contracts
    # ------------------------------------------------------------------------

    def analyze_layout(self, image: bytes, mime_type: str) -> Optional[str]:
        """
        Ask the layout model for the page's text blocks.

        Returns the raw JSON text of the response (None if the model
        produced no text).
        """
        from google.genai import types

        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=LAYOUT_RESPONSE_SCHEMA,
        )
        response = self._generate(
            self.layout_model,
            [types.Part.from_bytes(data=image, mime_type=mime_type), LAYOUT_PROMPT],
            config,
        )
        return response.text

    def restore_background(self, image: bytes, mime_type: str) -> RestoredImage:
        """
        Ask the image model for a text-free background of the page.

        Raises:
            RestorationRefused: If the response carries no image part
        """
        from google.genai import types

        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(
                aspect_ratio=self.aspect_ratio,
                image_size=self.image_size,
            ),
        )
        response = self._generate(
            self.restoration_model,
            [types.Part.from_bytes(data=image, mime_type=mime_type), RESTORATION_PROMPT],
            config,
        )

        for candidate in response.candidates or []:
            content = candidate.content
            if content is None:
                continue
            for part in content.parts or []:
                inline = part.inline_data
                if inline is not None and inline.data:
                    return RestoredImage(
                        data=inline.data,
                        mime_type=inline.mime_type or "image/png",
                    )

        raise RestorationRefused("Model refused to generate an image or content was restricted")

    def _generate(self, model: str, contents: list, config: Any):
        """Issue one generate_content call with error translation."""
        import httpx
        from google.genai import errors

        try:
            return self.client.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except errors.APIError as e:
            if is_authorization_failure(e):
                logger.error(f"Authorization failure from {model}: {e}")
                raise AuthorizationRequired(str(e)) from e
            logger.error(f"Gemini API error from {model}: {e}")
            raise ServiceError(str(e)) from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error calling {model}: {e}")
            raise ServiceError(f"{type(e).__name__}: {e}") from e
