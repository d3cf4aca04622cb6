"""
Custom Exceptions
=================

Unified exception hierarchy for consistent error handling across the engine.

Every error records whether the store was left untouched (``nothing_changed``)
so callers can tell a safe retry from a partially applied operation.
"""

from typing import Optional, Dict, Any


class ComicForgeError(Exception):
    """Base exception for all comicforge errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        nothing_changed: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable
        self.nothing_changed = nothing_changed

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "nothing_changed": self.nothing_changed,
        }


class ConfigurationError(ComicForgeError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, details=details, **kwargs)


class ValidationError(ComicForgeError):
    """Input validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)


class ResourceNotFoundError(ComicForgeError):
    """A series, character, episode or panel does not exist."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, recoverable=False, details=details, **kwargs)


class ProviderError(ComicForgeError):
    """Provider/API-related errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code
        if response_body:
            # Truncate large responses
            details["response_body"] = response_body[:500] if len(response_body) > 500 else response_body
        super().__init__(message, details=details, **kwargs)


class TransientGenerationFailure(ProviderError):
    """
    A single generation attempt failed.

    Covers transport errors, non-2xx responses, malformed bodies and
    responses without an inline image. Always retried by the provider.
    """

    def __init__(self, message: str, attempt: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if attempt:
            details["attempt"] = attempt
        super().__init__(message, recoverable=True, details=details, **kwargs)


class GenerationError(ComicForgeError):
    """Image generation errors."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        prompt: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if stage:
            details["stage"] = stage
        if prompt:
            # Truncate long prompts
            details["prompt"] = prompt[:200] if len(prompt) > 200 else prompt
        super().__init__(message, details=details, **kwargs)


class ExhaustedRetries(GenerationError):
    """Every attempt of a generation request failed."""

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        last_error: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if attempts is not None:
            details["attempts"] = attempts
        if last_error:
            details["last_error"] = last_error[:500]
        super().__init__(message, recoverable=True, details=details, **kwargs)


class DecodeFailure(GenerationError):
    """Generated bytes could not be decoded as an image."""

    def __init__(self, message: str, mime_type: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if mime_type:
            details["mime_type"] = mime_type
        super().__init__(message, stage="normalize", recoverable=False, details=details, **kwargs)


class ConsistencyViolation(ComicForgeError):
    """
    An atomic batch could not be committed.

    The batch was rolled back; the caller must retry the whole logical
    operation rather than resume it.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        staged_ops: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if staged_ops is not None:
            details["staged_ops"] = staged_ops
        super().__init__(message, recoverable=True, details=details, **kwargs)
