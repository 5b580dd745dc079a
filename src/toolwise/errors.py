"""
Exception taxonomy shared by the recommendation and discovery layers.

External and malformed-response errors are recovered by the caller moving on
to the next strategy. Duplicate, invalid-category and not-an-AI-tool errors
skip a single discovery candidate. Persistence errors abort a single commit.
"""

from .models import DiscoveryErrorKind

GENERIC_ERROR_MESSAGE = "Oops! Something went wrong. Please try again."


class ToolwiseError(Exception):
    """Base class for all Toolwise errors."""

    kind: DiscoveryErrorKind = DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE


class ExternalServiceUnavailable(ToolwiseError):
    """A completion provider or page fetch failed (non-2xx, network error)."""

    kind = DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE


class CompletionTimeout(ExternalServiceUnavailable):
    """The external call exceeded its timeout."""


class RateLimited(ExternalServiceUnavailable):
    """The provider answered 429."""


class MalformedResponse(ToolwiseError):
    """Output could not be parsed into the required structure."""

    kind = DiscoveryErrorKind.MALFORMED_RESPONSE


class MissingVerdict(MalformedResponse):
    """The classifier answered without a boolean isAITool verdict."""


class DuplicateEntity(ToolwiseError):
    """Tool id or name already exists in the catalog."""

    kind = DiscoveryErrorKind.DUPLICATE_ENTITY


class InvalidCategory(ToolwiseError):
    """Category key is not part of the catalog taxonomy."""

    kind = DiscoveryErrorKind.INVALID_CATEGORY


class NotAnAITool(ToolwiseError):
    """The classifier rejected the candidate."""

    kind = DiscoveryErrorKind.NOT_AN_AI_TOOL


class PersistenceFailure(ToolwiseError):
    """The catalog or discovery log could not be read or written."""

    kind = DiscoveryErrorKind.PERSISTENCE_FAILURE
