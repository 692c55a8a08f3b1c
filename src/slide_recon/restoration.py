"""
Background restoration pipeline for slide reconstruction.

Provides:
- Per-page lifecycle state (pending -> processing -> success | error)
- Strictly sequential batch submission in ascending page order
- Single-page retry that leaves every other page untouched
- Authorization failure handling (pause-and-resume or optimistic-continue)

At most one restoration call is in flight per pipeline, including when
a pipeline is shared between threads.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Protocol

from .errors import AuthorizationRequired, InvalidInput, ServiceError
from .images import detect_mime_type, is_genuine_raster

logger = logging.getLogger(__name__)


class RestorationService(Protocol):
    def restore_background(self, image: bytes, mime_type: str): ...


# ============================================================================
# Data Classes and Enums
# ============================================================================

class PageStatus(Enum):
    """Restoration lifecycle of one page."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class AuthorizationPolicy(Enum):
    """What to do when the service reports an authorization failure."""
    PAUSE = "pause"
    CONTINUE = "continue"


@dataclass(frozen=True)
class PageState:
    """Restoration state of one page's background image."""
    page_index: int
    source_image: bytes
    current_image: bytes
    mime_type: str = "image/png"
    status: PageStatus = PageStatus.PENDING
    is_eligible: bool = True
    error: Optional[str] = None
    attempts: int = 0
    current_mime_type: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == PageStatus.SUCCESS or not self.is_eligible

    def to_dict(self) -> dict:
        return {
            "page_index": self.page_index,
            "status": self.status.value,
            "is_eligible": self.is_eligible,
            "mime_type": self.mime_type,
            "restored": self.is_eligible and self.status == PageStatus.SUCCESS,
            "error": self.error,
            "attempts": self.attempts,
        }


@dataclass
class BatchResult:
    """Outcome of a batch run or a single-page retry."""
    pages: List[PageState]
    authorization_required: bool = False
    paused: bool = False

    @property
    def complete(self) -> bool:
        return is_batch_complete(self.pages)

    @property
    def failed_pages(self) -> List[int]:
        return [p.page_index for p in self.pages if p.status == PageStatus.ERROR]


def is_batch_complete(pages: Sequence[PageState]) -> bool:
    """True once every page is restored or ineligible."""
    return all(p.is_done for p in pages)


# ============================================================================
# Pipeline
# ============================================================================

class RestorationPipeline:
    """
    Sequential per-page job runner for background restoration.

    The authorization flag is explicit state: callers pass the last known
    value in and read the new value from the returned BatchResult.
    """

    def __init__(
        self,
        service: RestorationService,
        policy: AuthorizationPolicy = AuthorizationPolicy.PAUSE,
        authorizer: Optional[Callable[[], bool]] = None,
        on_update: Optional[Callable[[PageState], None]] = None
    ):
        self.service = service
        self.policy = AuthorizationPolicy(policy)
        self.authorizer = authorizer
        self.on_update = on_update
        self._submit_lock = threading.Lock()

    @staticmethod
    def create_pages(
        images: Sequence[Optional[bytes]],
        mime_types: Optional[Sequence[Optional[str]]] = None,
        page_numbers: Optional[Sequence[int]] = None
    ) -> List[PageState]:
        """
        Create the initial page states, one per detected page.

        A None or undecodable entry is a placeholder page: ineligible,
        never sent to the service. page_numbers gives each image its
        document page number (default 1..n).

        Raises:
            InvalidInput: If page_numbers is the wrong length or repeats
        """
        if page_numbers is None:
            page_numbers = range(1, len(images) + 1)
        page_numbers = list(page_numbers)
        if len(page_numbers) != len(images) or len(set(page_numbers)) != len(page_numbers):
            raise InvalidInput(
                f"Need {len(images)} distinct page numbers, got {page_numbers}"
            )

        pages = []
        for i, image in enumerate(images):
            data = image or b""
            eligible = is_genuine_raster(data)
            mime_type = None
            if mime_types is not None and i < len(mime_types):
                mime_type = mime_types[i]
            if not mime_type:
                mime_type = detect_mime_type(data) if eligible else "image/png"
            pages.append(PageState(
                page_index=page_numbers[i],
                source_image=data,
                current_image=data,
                mime_type=mime_type,
                is_eligible=eligible,
            ))
        return pages

    # ------------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------------

    def run_batch(
        self,
        pages: Sequence[PageState],
        authorization_required: bool = False,
        should_continue: Optional[Callable[[PageState], bool]] = None
    ) -> BatchResult:
        """
        Restore every page that is not yet successful, one at a time.

        Args:
            pages: Current page states (not modified)
            authorization_required: Flag returned by the previous run
            should_continue: Called after each completed page; returning
                False stops the batch, keeping finished pages

        Returns:
            BatchResult with the new page list and authorization state
        """
        pages = list(pages)

        if authorization_required and not self._authorize():
            logger.warning("Batch paused: authorization required")
            return BatchResult(pages, authorization_required=True, paused=True)
        authorization_required = False

        todo = sorted(
            (p for p in pages if p.status != PageStatus.SUCCESS),
            key=lambda p: p.page_index
        )
        logger.info(f"Restoring {len(todo)} of {len(pages)} page(s)")
        start_time = time.time()

        prompted = False
        for page in todo:
            updated, auth_failed = self._process(page)
            pages = _replace_page(pages, updated)

            if auth_failed:
                authorization_required = True
                if self.policy == AuthorizationPolicy.PAUSE:
                    logger.error(
                        f"Authorization failed on page {page.page_index}; "
                        f"pausing batch"
                    )
                    return BatchResult(pages, authorization_required=True, paused=True)
                # Optimistic: prompt once, then keep going without re-checking
                if not prompted:
                    self._authorize()
                    prompted = True

            if should_continue is not None and not should_continue(updated):
                logger.info(f"Batch stopped by caller after page {page.page_index}")
                break

        elapsed = time.time() - start_time
        result = BatchResult(pages, authorization_required=authorization_required)
        if result.complete:
            logger.info(f"Batch complete in {elapsed:.2f}s")
        else:
            logger.warning(
                f"Batch finished in {elapsed:.2f}s with failed pages: "
                f"{result.failed_pages}"
            )
        return result

    def retry_one(
        self,
        pages: Sequence[PageState],
        page_index: int,
        authorization_required: bool = False
    ) -> BatchResult:
        """
        Re-run restoration for a single page from its source image.

        Only the targeted entry is replaced; order and every other entry
        are preserved.

        Raises:
            InvalidInput: If no page has the given index
        """
        pages = list(pages)
        target = next((p for p in pages if p.page_index == page_index), None)
        if target is None:
            raise InvalidInput(f"Unknown page index: {page_index}")

        if authorization_required and not self._authorize():
            logger.warning(f"Retry of page {page_index} paused: authorization required")
            return BatchResult(pages, authorization_required=True, paused=True)

        logger.info(f"Retrying page {page_index}")
        updated, auth_failed = self._process(target)
        pages = _replace_page(pages, updated)

        if auth_failed and self.policy == AuthorizationPolicy.CONTINUE:
            self._authorize()
        return BatchResult(
            pages,
            authorization_required=auth_failed,
            paused=auth_failed and self.policy == AuthorizationPolicy.PAUSE,
        )

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    def _authorize(self) -> bool:
        """
        Run the re-authorization hook.

        Under PAUSE the hook's answer decides; under CONTINUE a grant is
        assumed whatever the hook reports.
        """
        granted = False
        if self.authorizer is not None:
            granted = bool(self.authorizer())
        if self.policy == AuthorizationPolicy.CONTINUE:
            return True
        return granted

    def _process(self, page: PageState):
        """Submit one page. Returns (new_state, authorization_failed)."""
        if not page.is_eligible:
            done = replace(page, status=PageStatus.SUCCESS, error=None)
            self._notify(done)
            return done, False

        processing = replace(page, status=PageStatus.PROCESSING, error=None)
        self._notify(processing)

        with self._submit_lock:
            start_time = time.time()
            try:
                restored = self.service.restore_background(page.source_image, page.mime_type)
            except AuthorizationRequired as e:
                failed = replace(
                    processing,
                    status=PageStatus.ERROR,
                    error=f"Authorization required: {e}",
                    attempts=page.attempts + 1,
                )
                self._notify(failed)
                return failed, True
            except ServiceError as e:
                logger.warning(f"Page {page.page_index} restoration failed: {e}")
                failed = replace(
                    processing,
                    status=PageStatus.ERROR,
                    error=str(e),
                    attempts=page.attempts + 1,
                )
                self._notify(failed)
                return failed, False
            except Exception as e:
                logger.exception(f"Page {page.page_index} restoration raised unexpectedly")
                failed = replace(
                    processing,
                    status=PageStatus.ERROR,
                    error=f"{type(e).__name__}: {e}",
                    attempts=page.attempts + 1,
                )
                self._notify(failed)
                return failed, False

        data = getattr(restored, "data", restored)
        mime_type = getattr(restored, "mime_type", None) or "image/png"
        logger.info(
            f"Page {page.page_index} restored in {time.time() - start_time:.2f}s"
        )
        done = replace(
            processing,
            status=PageStatus.SUCCESS,
            current_image=data,
            current_mime_type=mime_type,
            attempts=page.attempts + 1,
        )
        self._notify(done)
        return done, False

    def _notify(self, page: PageState) -> None:
        if self.on_update is not None:
            self.on_update(page)


def _replace_page(pages: List[PageState], updated: PageState) -> List[PageState]:
    return [updated if p.page_index == updated.page_index else p for p in pages]
