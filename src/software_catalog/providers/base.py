"""
Base provider with retry logic, timeouts, and error containment.

Every metadata provider derives from BaseProvider. Subclasses implement
_search() and may raise freely; the public search methods validate the
input, bound the call with a timeout and turn every failure into None.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field
from tenacity import (
    RetryCallState,
    RetryError,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from software_catalog.config import RetryConfig, Settings, get_settings
from software_catalog.logger import get_logger


class ProviderError(Exception):
    """A lookup against an external metadata source went wrong."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.url = url
        self.status_code = status_code
        self.cause = cause

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.provider}] {message}" if self.provider else message


class RateLimitError(ProviderError):
    """Raised when a provider answers 429."""


class APIError(ProviderError):
    """Raised when a provider returns an error response."""


class ParseError(ProviderError):
    """Raised when a provider response cannot be interpreted."""


class Partition(str, Enum):
    """Which kind of catalog entry a provider serves."""

    GAME = "game"
    SOFTWARE = "software"


class MetadataResult(BaseModel):
    """
    Normalized metadata returned by a provider.

    confidence is on a 0.0-1.0 scale; each provider documents how it
    derives the value.
    """

    source: str
    confidence: float = Field(ge=0.0, le=1.0)
    name: str | None = None
    description: str | None = None
    publisher: str | None = None
    developers: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    release_date: datetime | None = None
    icon_url: str | None = None
    background_image_url: str | None = None
    rating: float | None = None
    website_url: str | None = None
    additional_data: dict[str, str] = Field(default_factory=dict)


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, APIError):
        return error.status_code is not None and error.status_code >= 500
    return isinstance(error, httpx.TransportError)


class BaseProvider(ABC):
    """
    Abstract base class for metadata providers.

    Provides:
    - HTTP client management
    - Retry with exponential backoff on transport errors, 429 and 5xx
    - A timeout around every lookup
    - Structured logging

    Subclasses must define name, priority, min_confidence, partition
    and implement _search().
    """

    name: str = "base"
    priority: int = 100
    min_confidence: float = 0.6
    partition: Partition = Partition.SOFTWARE

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        retry_config: RetryConfig | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            settings: Application settings (uses cached settings if None)
            retry_config: Custom retry configuration
            timeout: Upper bound in seconds for one lookup
        """
        self._settings = settings or get_settings()
        self._retry_config = retry_config or self._settings.retry
        self._timeout = timeout or self._settings.providers.timeout_seconds
        self._logger = get_logger(
            self.__class__.__name__,
            component="provider",
            provider=self.name,
        )
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} priority={self.priority}>"

    def is_available(self) -> bool:
        """Whether the provider can be used at all (credentials, tooling)."""
        return True

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self._settings.providers.user_agent}
            self._client = httpx.AsyncClient(headers=headers, timeout=self._timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        if not client.is_closed:
            await client.aclose()

    async def __aenter__(self) -> "BaseProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Public lookups
    # =========================================================================

    async def search_by_name(self, name: str | None) -> MetadataResult | None:
        """
        Look up metadata by name.

        Returns None for blank input (without I/O), on no match, and on
        any failure including timeout.
        """
        if not name or not name.strip():
            return None
        return await self._guarded(self._search(name.strip()), name=name)

    async def search_by_name_and_publisher(
        self, name: str | None, publisher: str | None
    ) -> MetadataResult | None:
        """Look up metadata by name, narrowed by publisher when one is given."""
        if not name or not name.strip():
            return None
        if not publisher or not publisher.strip():
            return await self.search_by_name(name)
        return await self._guarded(
            self._search_with_publisher(name.strip(), publisher.strip()),
            name=name,
            publisher=publisher,
        )

    async def _guarded(self, lookup: Any, **context: Any) -> MetadataResult | None:
        try:
            result: MetadataResult | None = await asyncio.wait_for(lookup, self._timeout)
        except asyncio.TimeoutError:
            self._logger.warning("Lookup timed out", timeout_seconds=self._timeout, **context)
            return None
        except ProviderError as e:
            self._logger.warning(
                "Lookup failed",
                error=str(e),
                status_code=e.status_code,
                url=e.url,
                **context,
            )
            return None
        except Exception as e:
            self._logger.error(
                "Unexpected lookup error",
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
            return None

        if result is None:
            self._logger.debug("No match", **context)
        else:
            self._logger.info(
                "Match found",
                matched_name=result.name,
                confidence=round(result.confidence, 3),
                **context,
            )
        return result

    @abstractmethod
    async def _search(self, name: str) -> MetadataResult | None:
        """
        Name lookup for this provider.

        May raise; the caller converts exceptions into None.
        """

    async def _search_with_publisher(self, name: str, publisher: str) -> MetadataResult | None:
        """Publisher-aware lookup; providers without one fall back to the name."""
        return await self._search(name)

    # =========================================================================
    # HTTP
    # =========================================================================

    def _with_backoff(self) -> Any:
        policy = self._retry_config
        return retry(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay_seconds,
                exp_base=policy.exponential_base,
                max=policy.max_delay_seconds,
            ),
            before_sleep=self._on_backoff,
            reraise=True,
        )

    def _on_backoff(self, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        self._logger.warning(
            "Backing off",
            attempt=state.attempt_number,
            sleep_seconds=state.next_action.sleep if state.next_action else 0,
            error=str(error) if error else None,
        )

    async def _make_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, backing off on transport errors, 429 and 5xx.

        4xx answers other than 429 fail immediately with APIError. Once the
        attempts are used up the last error is re-raised; transport errors
        are wrapped in ProviderError.
        """

        @self._with_backoff()
        async def send() -> httpx.Response:
            self._logger.debug("Request", method=method, url=url)
            response = await self.client.request(method, url, **kwargs)
            status = response.status_code
            if status == 429:
                raise RateLimitError(
                    f"throttled, Retry-After={response.headers.get('Retry-After', '?')}",
                    provider=self.name,
                    url=url,
                    status_code=status,
                )
            if status >= 400:
                raise APIError(f"HTTP {status}", provider=self.name, url=url, status_code=status)
            return response

        try:
            response: httpx.Response = await send()
        except (RetryError, httpx.HTTPError) as e:
            raise ProviderError(f"{method} failed: {e}", provider=self.name, url=url, cause=e) from e
        return response

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode its JSON body."""
        response = await self._make_request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ParseError("Response is not valid JSON", provider=self.name, url=url, cause=e) from e
