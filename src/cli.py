#!/usr/bin/env python
"""
Command-line interface for the Slide Layer Reconstruction Pipeline.

Usage:
    python src/cli.py --input <pdf_or_image> --output <output_dir> [options]

Examples:
    # Full run: text layer, picture layer and merged deck
    python src/cli.py --input deck.pdf --output ./output

    # Only extract the text layer
    python src/cli.py --input deck.pdf --output ./output --stage text

    # Keep submitting pages after an authorization failure
    python src/cli.py --input deck.pdf --output ./output --auth-policy continue
"""

import sys
from pathlib import Path

# Add src directory to path for imports when running as script
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import argparse
import getpass
import importlib
import logging
import time
from typing import List, Optional, Callable

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("slide_recon")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PAUSED = 2
EXIT_INTERRUPTED = 130


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Slide Layer Reconstruction - Convert rendered pages into editable slide decks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Full run (text layer, picture layer, merged deck):
    python src/cli.py --input deck.pdf --output ./output

  Text layer only:
    python src/cli.py --input deck.pdf --output ./output --stage text

  Process only specific pages and retry failed backgrounds once:
    python src/cli.py --input deck.pdf --output ./output --pages 1-5 --retry-failed
        """
    )

    # Required arguments
    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input PDF file, image, or folder of images"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated decks"
    )

    # Optional arguments
    parser.add_argument(
        "--stage", "-s",
        choices=["text", "picture", "final", "all"],
        default="all",
        help="Which decks to produce (default: all)"
    )

    parser.add_argument(
        "--name", "-n",
        default=None,
        help="Base name of the generated decks (default: input file name)"
    )

    parser.add_argument(
        "--dpi",
        type=int,
        default=None,
        help="DPI for PDF rasterization (default: 252)"
    )

    parser.add_argument(
        "--pages",
        type=str,
        default=None,
        help="Page range to process, e.g., '1-5' or '1,3,5' (default: all)"
    )

    parser.add_argument(
        "--auth-policy",
        choices=["pause", "continue"],
        default=None,
        help="On authorization failure: pause the batch or continue optimistically"
    )

    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Retry each background that failed, once, after the batch"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging and re-raise unexpected errors"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def parse_page_range(page_str: str, max_pages: int) -> List[int]:
    """Parse page range string to list of page numbers."""
    pages = []

    for part in page_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-", 1)
            start = max(int(start), 1)
            end = min(int(end), max_pages)
            pages.extend(range(start, end + 1))
        else:
            page = int(part)
            if 1 <= page <= max_pages:
                pages.append(page)

    return sorted(set(pages))


# (import name, distribution name); the first group is required
REQUIRED_MODULES = [
    ("cv2", "opencv-python"),
    ("PIL", "Pillow"),
    ("pptx", "python-pptx"),
    ("pydantic", "pydantic"),
    ("google.genai", "google-genai"),
]
OPTIONAL_MODULES = [
    ("pdf2image", "pdf2image (PDF input)"),
]


def _missing(modules) -> List[str]:
    missing = []
    for module, dist in modules:
        try:
            importlib.import_module(module)
        except ImportError:
            missing.append(dist)
    return missing


def check_dependencies() -> bool:
    """Report missing packages; False if a required one is absent."""
    missing = _missing(REQUIRED_MODULES)
    if missing:
        logger.error(f"Missing required packages: {', '.join(missing)}")
        logger.error("Install with: pip install -e .")
        return False

    for dist in _missing(OPTIONAL_MODULES):
        logger.warning(f"Optional package not installed: {dist}")
    return True


def make_authorizer(client) -> Optional[Callable[[], bool]]:
    """
    Build the re-authorization hook: prompt for a replacement API key.

    Returns None when stdin is not interactive.
    """
    if not sys.stdin.isatty():
        return None

    def authorize() -> bool:
        print("\nThe restoration model requires an API key from a billed project.")
        print("See https://ai.google.dev/gemini-api/docs/billing")
        try:
            api_key = getpass.getpass("New API key (leave empty to stop): ").strip()
        except EOFError:
            return False
        if not api_key:
            return False
        client.reauthorize(api_key)
        return True

    return authorize


def run_pipeline(args) -> int:
    """Run the slide reconstruction pipeline."""
    from slide_recon.assembler import DeckAssembler
    from slide_recon.errors import AuthorizationRequired
    from slide_recon.export import DeckExporter, SlideDeckWriter
    from slide_recon.io import ensure_dir, load_pages, save_json
    from slide_recon.restoration import AuthorizationPolicy, PageStatus
    from slide_recon.vision import GeminiVisionClient
    from config import get_config

    start_time = time.time()
    config = get_config()
    if args.debug:
        config.debug_mode = True
    if config.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.dpi:
        config.render.dpi = args.dpi
    if args.auth_policy:
        config.restoration.auth_policy = args.auth_policy
    if args.retry_failed:
        config.restoration.retry_failed = True

    if not config.vision.api_key:
        logger.error("No API key found. Set GEMINI_API_KEY (or GOOGLE_API_KEY).")
        return EXIT_FAILED

    output_dir = ensure_dir(args.output)
    input_path = Path(args.input)
    base_name = args.name or input_path.stem

    # Load pages
    try:
        images = load_pages(input_path, dpi=config.render.dpi)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error(f"Could not load input: {e}")
        return EXIT_FAILED

    if not images:
        logger.error("No pages to process")
        return EXIT_FAILED

    # Selected pages keep their document numbers
    page_numbers = None
    if args.pages:
        page_numbers = parse_page_range(args.pages, len(images))
        if not page_numbers:
            logger.error(f"No pages selected by --pages {args.pages}")
            return EXIT_FAILED
        images = [images[i - 1] for i in page_numbers]
        logger.info(f"Processing pages: {page_numbers}")

    logger.info(f"Loaded {len(images)} page(s)")

    client = GeminiVisionClient(
        api_key=config.vision.api_key,
        layout_model=config.vision.layout_model,
        restoration_model=config.vision.restoration_model,
        aspect_ratio=config.vision.aspect_ratio,
        image_size=config.vision.image_size,
        timeout_seconds=config.vision.timeout_seconds,
    )

    def report(page):
        logger.info(f"Page {page.page_index}: {page.status.value}")

    assembler = DeckAssembler(
        client,
        images,
        auth_policy=AuthorizationPolicy(config.restoration.auth_policy),
        authorizer=make_authorizer(client),
        on_update=report,
        source_file=str(input_path),
        min_image_bytes=config.extraction.min_image_bytes,
        page_numbers=page_numbers,
    )

    stage = args.stage
    need_text = stage in ("text", "final", "all")
    need_picture = stage in ("picture", "final", "all")
    formats = {"text": ["text"], "picture": ["picture"], "final": ["final"]}.get(
        stage, ["text", "picture", "final"]
    )

    if need_text:
        try:
            assembler.extract_text_layer()
        except AuthorizationRequired as e:
            logger.error(f"Text extraction stopped, authorization required: {e}")
            return EXIT_PAUSED

    if need_picture:
        result = assembler.restore_backgrounds()

        if result.paused:
            # Pause policy: one more attempt after the operator re-authorizes
            result = assembler.restore_backgrounds()

        if config.restoration.retry_failed and not result.paused:
            for page_index in result.failed_pages:
                result = assembler.retry_background(page_index)
                if result.paused:
                    break

    exit_code = EXIT_OK
    if need_picture and not assembler.restoration_complete:
        failed = [p.page_index for p in assembler.pages if p.status == PageStatus.ERROR]
        if assembler.paused:
            logger.error("Restoration paused: authorization required")
            exit_code = EXIT_PAUSED
        else:
            logger.error(f"Restoration incomplete, failed pages: {failed}")
            exit_code = EXIT_FAILED
        # Merge is gated on a complete batch
        formats = [f for f in formats if f != "final"]

    writer = SlideDeckWriter(
        slide_width_inches=config.export.slide_width_inches,
        slide_height_inches=config.export.slide_height_inches,
    )
    exporter = DeckExporter(output_dir, base_name, writer=writer)
    export_results = exporter.export(assembler, formats) if formats else {}
    for fmt, path in export_results.items():
        logger.info(f"Exported {fmt}: {path}")

    if config.export.save_session_json or config.debug_mode:
        save_json(assembler.to_dict(), output_dir / f"{base_name}_session.json")

    elapsed = time.time() - start_time
    if not args.quiet:
        print("\n" + "=" * 60)
        print("SLIDE RECONSTRUCTION " + ("COMPLETE" if exit_code == EXIT_OK else "INCOMPLETE"))
        print("=" * 60)
        print(f"Source: {input_path}")
        print(f"Output: {output_dir}")
        print(f"Pages: {len(assembler.pages)}")
        print(f"Processing time: {elapsed:.2f}s")
        if need_text:
            blocks = sum(len(p) for p in assembler.placements.values())
            degraded = [i for i, r in assembler.extractions.items() if r.is_degraded]
            failed = [i for i, r in assembler.extractions.items() if r.is_failed]
            print(f"  Text blocks: {blocks} (degraded pages: {degraded}, failed pages: {failed})")
        if need_picture:
            done = sum(1 for p in assembler.pages if p.is_done)
            print(f"  Backgrounds: {done}/{len(assembler.pages)} restored or skipped")
        for fmt, path in export_results.items():
            print(f"  {fmt}: {path}")
        print("=" * 60)

    return exit_code


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose or args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    if not check_dependencies():
        sys.exit(EXIT_FAILED)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            raise
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
