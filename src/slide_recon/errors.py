"""
Error taxonomy for the slide reconstruction pipeline.

Recoverable service failures are turned into per-page state by the
pipeline; only input validation aborts a single operation.
"""


class SlideReconError(Exception):
    """Base class for all pipeline errors."""


class InvalidInput(SlideReconError, ValueError):
    """Page image missing, too small, or otherwise unusable."""


class ServiceError(SlideReconError):
    """Generic failure of an external service call (includes timeouts)."""


class ExtractionFailed(ServiceError):
    """Text-structure service unreachable or returned no payload."""


class RestorationRefused(ServiceError):
    """Restoration service returned no image."""


class AuthorizationRequired(ServiceError):
    """Service reported the billing/authorization failure signature."""


# Signature the vision service uses for an unbilled or unknown project key
AUTHORIZATION_SIGNATURE = "Requested entity was not found"


def is_authorization_failure(error: BaseException) -> bool:
    """Check whether an exception carries the authorization failure signature."""
    if isinstance(error, AuthorizationRequired):
        return True
    return AUTHORIZATION_SIGNATURE.lower() in str(error).lower()
