"""
Custom exception classes for the autoblog generation pipeline.

Exceptions are raised at the point of failure with enough context to
debug the run from the logs alone. Stage boundaries decide whether a
failure is fatal for the run or degrades the output; see
``autoblog.agents.orchestrator`` for that routing.

Hierarchy:
    Exception
    +-- AgentBaseError (base for all pipeline-stage errors)
    |   +-- GenerationFailure (fatal for the current run)
    |   |   +-- TopicSelectionError
    |   |   +-- DraftGenerationError
    |   |   +-- MetadataExtractionError
    |   +-- LLMResponseBlockedError
    |   +-- ResearchFeedError
    |   +-- ImageGenerationError
    +-- ValidationError (ValueError)
    +-- DatabaseError
    |   +-- DuplicateSlugError
    +-- ConfigurationError
    +-- RetryExhaustedError
    +-- NodeTimeoutError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class AgentBaseError(Exception):
    """Base exception for all pipeline-stage errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class DatabaseError(Exception):
    """Raised when content store or object storage operations fail."""

    pass


class DuplicateSlugError(DatabaseError):
    """Raised when a post insert collides with an existing slug.

    Attributes:
        slug: The slug that already exists in the ``posts`` table.
    """

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"A post with slug '{slug}' already exists")


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


class NodeTimeoutError(Exception):
    """Raised when a pipeline stage exceeds its time budget.

    Attributes:
        node_name: Name of the stage that timed out.
        timeout: Timeout duration in seconds.
    """

    def __init__(self, node_name: str, timeout: float):
        self.node_name = node_name
        self.timeout = timeout
        super().__init__(f"Node '{node_name}' timed out after {timeout} seconds")


# =============================================================================
# GENERATION EXCEPTIONS
# =============================================================================


class GenerationFailure(AgentBaseError):
    """A stage could not produce output the rest of the run depends on."""

    pass


class TopicSelectionError(GenerationFailure):
    """Raised when the topic selector returns nothing usable."""

    pass


class DraftGenerationError(GenerationFailure):
    """Raised when no draft could be produced."""

    pass


class MetadataExtractionError(GenerationFailure):
    """Raised when metadata is missing a field or has the wrong type."""

    pass


class LLMResponseBlockedError(AgentBaseError):
    """Raised when the model returns no text for a non-normal finish reason.

    Attributes:
        finish_reason: Finish reason reported by the model
            (``"SAFETY"``, ``"MAX_TOKENS"``, ...).
    """

    def __init__(self, finish_reason: Optional[str], message: str = ""):
        self.finish_reason = finish_reason
        super().__init__(
            message or f"Model returned no text (finish_reason={finish_reason})"
        )

    @property
    def is_safety_block(self) -> bool:
        return self.finish_reason == "SAFETY"

    @property
    def is_truncated(self) -> bool:
        return self.finish_reason == "MAX_TOKENS"


# =============================================================================
# COLLABORATOR EXCEPTIONS
# =============================================================================


class ResearchFeedError(AgentBaseError):
    """Raised when no trend/news source yields any data."""

    pass


class ImageGenerationError(AgentBaseError):
    """Raised when the image model call fails or returns no image."""

    pass


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "AgentBaseError",
    # Core
    "ValidationError",
    "DatabaseError",
    "DuplicateSlugError",
    "ConfigurationError",
    "RetryExhaustedError",
    "NodeTimeoutError",
    # Generation
    "GenerationFailure",
    "TopicSelectionError",
    "DraftGenerationError",
    "MetadataExtractionError",
    "LLMResponseBlockedError",
    # Collaborators
    "ResearchFeedError",
    "ImageGenerationError",
]
