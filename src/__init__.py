"""
Slide Layer Reconstruction
==========================

Converts rendered document pages (PDF pages or images) into editable
slide decks by recovering two layers independently and merging them.

Main components:
- Layout extraction (vision model -> normalized text blocks)
- Layout mapping (normalized boxes -> slide placements and styling)
- Background restoration (sequential, per-page, retryable)
- Merge and PowerPoint export
"""

__version__ = "1.0.0"
__author__ = "Slide Reconstruction Team"
