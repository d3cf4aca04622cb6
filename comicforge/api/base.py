"""
Base Image Provider
===================

Abstract base class for image generation providers, with the shared
retry loop used by every caller of the generation service.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Callable, Awaitable, Sequence

import httpx

from ..core.exceptions import ExhaustedRetries, ProviderError, ValidationError
from ..core.security import redact_api_key
from ..utils.image_utils import ImageBlob

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================


DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_MULTIPLIER = 2.0
DEFAULT_TIMEOUT = 120

# on_retry(attempt, max_retries, delay_ms)
RetryCallback = Callable[[int, int, int], None]


# =============================================================================
# Data Classes
# =============================================================================


class GenerationStatus(Enum):
    """Terminal status of a generation request."""

    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GenerationRequest:
    """One logical image generation request."""

    prompt: str
    references: List[ImageBlob] = field(default_factory=list)
    max_retries: int = DEFAULT_MAX_RETRIES
    on_retry: Optional[RetryCallback] = None


@dataclass
class GenerationResult:
    """Either a generated image or the terminal failure of every attempt."""

    status: GenerationStatus
    image: Optional[ImageBlob] = None
    attempts: int = 0
    error: Optional[Exception] = None

    provider: Optional[str] = None
    model: Optional[str] = None
    prompt: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def is_complete(self) -> bool:
        return self.status == GenerationStatus.COMPLETED and self.image is not None

    def is_failed(self) -> bool:
        return self.status == GenerationStatus.FAILED

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization (image omitted)."""
        return {
            "status": self.status.value,
            "attempts": self.attempts,
            "provider": self.provider,
            "model": self.model,
            "has_image": self.image is not None,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Base Provider Class
# =============================================================================


class BaseImageProvider(ABC):
    """
    Abstract base class for image generation providers.

    Subclasses implement a single attempt in
    :meth:`_make_generation_request`; :meth:`generate` wraps it with
    bounded retries and exponential backoff.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key (or read from environment)
            base_url: Base URL for the API
            model: Model name (provider default when omitted)
            timeout: Request timeout in seconds
            max_retries: Total attempts per request
            retry_base_delay: Delay before the first retry, in seconds
            client: Pre-built HTTP client (owned by the caller)
            sleep: Coroutine used for backoff delays
        """
        self.api_key = api_key or self._get_api_key_from_env()
        self.base_url = base_url or self._get_default_base_url()
        self.model = model or self.default_model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._sleep = sleep or asyncio.sleep

        self._validate_config()

    # -------------------------------------------------------------------------
    # Abstract Methods (must be implemented by subclasses)
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Return the model used when none is configured."""
        pass

    @property
    @abstractmethod
    def env_key_name(self) -> str:
        """Return the environment variable name for the API key."""
        pass

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Return the default base URL for this provider."""
        pass

    @abstractmethod
    async def _make_generation_request(
        self,
        prompt: str,
        references: Sequence[ImageBlob],
    ) -> ImageBlob:
        """
        Make exactly one call to the generation service.

        Args:
            prompt: Full prompt text
            references: Reference images, in order

        Returns:
            The generated image

        Raises:
            TransientGenerationFailure: On any failed attempt
        """
        pass

    # -------------------------------------------------------------------------
    # Retry loop
    # -------------------------------------------------------------------------

    def backoff_delay(self, completed_attempts: int) -> float:
        """Delay in seconds before the attempt following ``completed_attempts``."""
        return self.retry_base_delay * (DEFAULT_RETRY_MULTIPLIER ** (completed_attempts - 1))

    async def generate(
        self,
        prompt: str,
        references: Optional[Sequence[ImageBlob]] = None,
        max_retries: Optional[int] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> GenerationResult:
        """
        Generate an image, retrying failed attempts with exponential backoff.

        ``max_retries`` is the total number of attempts. Before each backoff
        delay ``on_retry(attempt, max_retries, delay_ms)`` is invoked for
        progress reporting. Failures never propagate: when every attempt has
        failed, a FAILED result carrying :class:`ExhaustedRetries` is returned.

        Args:
            prompt: Full prompt text
            references: Reference images, in order
            max_retries: Total attempts (provider default when omitted)
            on_retry: Progress callback

        Returns:
            GenerationResult

        Raises:
            ValidationError: If fewer than one attempt is requested
        """
        if max_retries is None:
            max_retries = self.max_retries
        if max_retries < 1:
            raise ValidationError(
                "max_retries must be at least 1",
                field="max_retries",
                value=max_retries,
            )
        references = list(references or [])
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                logger.info(
                    f"Attempt {attempt}/{max_retries} - generating image with "
                    f"{self.provider_name} ({len(references)} references)"
                )
                image = await self._make_generation_request(prompt, references)
                logger.info(f"Image generated successfully on attempt {attempt}")
                return GenerationResult(
                    status=GenerationStatus.COMPLETED,
                    image=image,
                    attempts=attempt,
                    provider=self.provider_name,
                    model=self.model,
                    prompt=prompt,
                )

            except (ProviderError, httpx.HTTPError) as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{max_retries} failed: {redact_api_key(str(e))}"
                )

            except Exception as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{max_retries} failed unexpectedly: "
                    f"{type(e).__name__}: {redact_api_key(str(e))}"
                )

            if attempt < max_retries:
                delay = self.backoff_delay(attempt)
                self._notify_retry(on_retry, attempt, max_retries, delay)
                logger.info(f"Retrying in {delay:.1f}s")
                await self._sleep(delay)

        message = redact_api_key(str(last_error)) if last_error else "unknown error"
        logger.error(f"All {max_retries} attempts failed. Last error: {message}")
        return GenerationResult(
            status=GenerationStatus.FAILED,
            attempts=max_retries,
            error=ExhaustedRetries(
                f"Image generation failed after {max_retries} attempts",
                attempts=max_retries,
                last_error=message,
                prompt=prompt,
            ),
            provider=self.provider_name,
            model=self.model,
            prompt=prompt,
        )

    async def generate_request(self, request: GenerationRequest) -> GenerationResult:
        """Run a :class:`GenerationRequest`."""
        return await self.generate(
            request.prompt,
            request.references,
            max_retries=request.max_retries,
            on_retry=request.on_retry,
        )

    @staticmethod
    def _notify_retry(
        on_retry: Optional[RetryCallback],
        attempt: int,
        max_retries: int,
        delay: float,
    ) -> None:
        if on_retry is None:
            return
        try:
            on_retry(attempt, max_retries, int(round(delay * 1000)))
        except Exception as e:
            # Progress reporting must not change the retry schedule
            logger.warning(f"on_retry callback raised: {e}")

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def _get_api_key_from_env(self) -> Optional[str]:
        """Get API key from environment variable."""
        return os.getenv(self.env_key_name)

    def _validate_config(self) -> None:
        """Validate the provider configuration."""
        if not self.api_key:
            logger.warning(
                f"No API key found for {self.provider_name}. "
                f"Set {self.env_key_name} environment variable or pass api_key parameter."
            )
        if self.max_retries < 1:
            raise ValidationError(
                "max_retries must be at least 1",
                field="max_retries",
                value=self.max_retries,
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    headers=self._get_headers(),
                )
            return self._client

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        async with self._client_lock:
            if self._client and self._owns_client:
                await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_name}, model={self.model})"
