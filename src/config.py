"""
Configuration and constants for the slide reconstruction pipeline.

This module provides:
- Logging setup
- Vision service settings (models, API key, timeout)
- Authorization failure policy
- Rendering and export parameters
"""

import os
from dataclasses import dataclass, field
from typing import Optional
import logging

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("slide_recon")


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class VisionConfig:
    """Gemini vision service configuration."""
    api_key: Optional[str] = None
    layout_model: str = "gemini-3-flash-preview"
    restoration_model: str = "gemini-3-pro-image-preview"
    # Restoration output tier
    aspect_ratio: str = "16:9"
    image_size: str = "1K"
    timeout_seconds: float = 120.0


@dataclass
class ExtractionConfig:
    """Layout extraction configuration."""
    min_image_bytes: int = 75


@dataclass
class RestorationConfig:
    """Background restoration configuration."""
    # pause: stop the batch until re-authorized
    # continue: assume the key is fixed and keep submitting
    auth_policy: str = "pause"
    retry_failed: bool = False


@dataclass
class RenderConfig:
    """Page rasterization configuration."""
    dpi: int = 252  # 3.5x the 72 DPI PDF user space


@dataclass
class ExportConfig:
    """Slide deck export configuration."""
    slide_width_inches: float = 10.0
    slide_height_inches: float = 5.625
    save_session_json: bool = True


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    vision: VisionConfig = field(default_factory=VisionConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    restoration: RestorationConfig = field(default_factory=RestorationConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    debug_mode: bool = False


AUTH_POLICIES = ("pause", "continue")


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    config.vision.api_key = (
        os.environ.get("GEMINI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
        or os.environ.get("API_KEY")
    )

    if os.environ.get("SLIDE_RECON_LAYOUT_MODEL"):
        config.vision.layout_model = os.environ["SLIDE_RECON_LAYOUT_MODEL"]
    if os.environ.get("SLIDE_RECON_RESTORATION_MODEL"):
        config.vision.restoration_model = os.environ["SLIDE_RECON_RESTORATION_MODEL"]

    timeout = os.environ.get("SLIDE_RECON_TIMEOUT")
    if timeout:
        try:
            config.vision.timeout_seconds = float(timeout)
        except ValueError:
            logger.warning(f"Ignoring invalid SLIDE_RECON_TIMEOUT: {timeout!r}")

    policy = os.environ.get("SLIDE_RECON_AUTH_POLICY", "").lower()
    if policy:
        if policy in AUTH_POLICIES:
            config.restoration.auth_policy = policy
        else:
            logger.warning(f"Ignoring unknown SLIDE_RECON_AUTH_POLICY: {policy!r}")

    if os.environ.get("SLIDE_RECON_DEBUG", "").lower() == "true":
        config.debug_mode = True

    return config
