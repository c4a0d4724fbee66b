"""Completion client for page generation, entity extraction and evaluation."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from litellm import acompletion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    InternalServerError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)

from wikigen.config import ConfigError, load_settings
from wikigen.constants.llm import (
    DEFAULT_TEMPERATURE,
    JSON_TEMPERATURE,
    MAX_RETRIES,
    MAX_TOKENS,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)

logger = logging.getLogger(__name__)

# Provider failures worth another attempt after a pause
TRANSIENT_ERRORS = (
    RateLimitError,
    APIConnectionError,
    Timeout,
    InternalServerError,
    ServiceUnavailableError,
)

# Response headers copied into the query log when a call fails
LOGGED_HEADER_PREFIXES = ("x-ratelimit-", "retry-after", "x-request-id")

# Providers that litellm expects without a "provider/" prefix
UNPREFIXED_PROVIDERS = {"openai"}

JSON_INSTRUCTION = "Respond with valid JSON only."


class LLMError(Exception):
    """A completion request failed."""


class LLMConnectionError(LLMError):
    """The provider could not be reached, even after retrying."""


class LLMAuthenticationError(LLMError):
    """The provider rejected the configured credentials."""


class LLMRateLimitError(LLMError):
    """The provider kept rate limiting the client after every retry."""


@dataclass
class LLMResponse:
    """Completion text plus token accounting."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def describe_failure(error: Exception) -> dict[str, Any]:
    """Collect status code, provider and rate-limit headers from a litellm error."""
    info: dict[str, Any] = {}
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None) or getattr(error, "status_code", None)
    if status is not None:
        info["status_code"] = status
    headers = getattr(response, "headers", None)
    if headers is not None:
        kept = {
            name: value
            for name, value in dict(headers).items()
            if name.lower().startswith(LOGGED_HEADER_PREFIXES)
        }
        if kept:
            info["response_headers"] = kept
    provider = getattr(error, "llm_provider", None)
    if provider:
        info["llm_provider"] = provider
    return info


def _token_usage(response: Any) -> tuple[int, int]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0, 0
    return (
        int(getattr(usage, "prompt_tokens", 0) or 0),
        int(getattr(usage, "completion_tokens", 0) or 0),
    )


class LLMClient:
    """Thin async wrapper over litellm used by every generation step.

    Transient provider failures are retried with capped exponential backoff.
    Each call, successful or not, can be appended to a JSONL log for later
    inspection of prompts and costs.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str | None = None,
        endpoint: str | None = None,
        log_path: Path | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
    ):
        """Create a client.

        Args:
            provider: openai, anthropic, google or ollama.
            model: Model name at that provider.
            api_key: Key to send; litellm reads the provider env var if None.
            endpoint: Base URL, used for ollama only.
            log_path: JSONL file that receives one record per attempt.
            max_retries: Retries for transient errors; settings value if None.
            retry_base_delay: First backoff delay in seconds; settings value if None.
        """
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.log_path = log_path

        if max_retries is None or retry_base_delay is None:
            try:
                llm_settings = load_settings().llm
                configured = (llm_settings.max_retries, llm_settings.retry_base_delay)
            except (ValueError, OSError, ConfigError):
                # Settings not available (e.g., invalid WIKI_* variables in tests)
                configured = (MAX_RETRIES, RETRY_BASE_DELAY)
            max_retries = configured[0] if max_retries is None else max_retries
            retry_base_delay = configured[1] if retry_base_delay is None else retry_base_delay
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    @property
    def model_string(self) -> str:
        """Model identifier in the form litellm routes on."""
        if self.provider in UNPREFIXED_PROVIDERS:
            return self.model
        return f"{self.provider}/{self.model}"

    def _request_kwargs(
        self, prompt: str, system_prompt: str | None, temperature: float, max_tokens: int
    ) -> dict[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model_string,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.endpoint and self.provider == "ollama":
            kwargs["api_base"] = self.endpoint
        return kwargs

    def _record(
        self,
        kwargs: dict[str, Any],
        started: float,
        attempt: int,
        content: str | None = None,
        error: Exception | None = None,
    ) -> None:
        """Append one attempt to the query log, if logging is enabled."""
        if not self.log_path:
            return

        messages = kwargs["messages"]
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": self.provider,
            "model": self.model,
            "attempt": attempt,
            "request": {
                "system_prompt": messages[0]["content"] if len(messages) > 1 else None,
                "prompt": messages[-1]["content"],
                "temperature": kwargs["temperature"],
                "max_tokens": kwargs["max_tokens"],
            },
            "response": content,
            "duration_ms": round((time.perf_counter() - started) * 1000),
            "error": str(error) if error is not None else None,
        }
        if error is not None:
            failure = describe_failure(error)
            if failure:
                entry["error_details"] = failure

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as log_file:
                log_file.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning(f"Could not write LLM query log {self.log_path}: {e}")

    def _retry_delay(self, attempt: int) -> float:
        return min(self.retry_base_delay * (2**attempt), RETRY_MAX_DELAY)

    async def generate_with_usage(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Run one completion and report its token usage.

        Raises:
            LLMAuthenticationError: Credentials were rejected.
            LLMRateLimitError: Still rate limited after all retries.
            LLMConnectionError: Provider unreachable after all retries.
            LLMError: Any other provider failure.
        """
        if temperature is None or max_tokens is None:
            try:
                llm_settings = load_settings().llm
                defaults = (llm_settings.default_temperature, llm_settings.max_tokens)
            except (ValueError, OSError, ConfigError):
                # Settings not available (e.g., invalid WIKI_* variables in tests)
                defaults = (DEFAULT_TEMPERATURE, MAX_TOKENS)
            temperature = defaults[0] if temperature is None else temperature
            max_tokens = defaults[1] if max_tokens is None else max_tokens

        kwargs = self._request_kwargs(prompt, system_prompt, temperature, max_tokens)

        for attempt in range(self.max_retries + 1):
            started = time.perf_counter()
            try:
                response = await acompletion(**kwargs)
            except AuthenticationError as e:
                self._record(kwargs, started, attempt, error=e)
                raise LLMAuthenticationError(f"Provider rejected credentials: {e}") from e
            except TRANSIENT_ERRORS as e:
                self._record(kwargs, started, attempt, error=e)
                if attempt < self.max_retries:
                    delay = self._retry_delay(attempt)
                    logger.warning(
                        f"{type(e).__name__} from {self.provider}, "
                        f"retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                if isinstance(e, RateLimitError):
                    raise LLMRateLimitError(f"Still rate limited after retries: {e}") from e
                if isinstance(e, (APIConnectionError, Timeout)):
                    raise LLMConnectionError(f"Provider unreachable: {e}") from e
                raise LLMError(f"Provider error: {e}") from e
            except APIError as e:
                self._record(kwargs, started, attempt, error=e)
                raise LLMError(f"Provider error: {e}") from e

            content = str(response.choices[0].message.content or "")
            self._record(kwargs, started, attempt, content=content)
            input_tokens, output_tokens = _token_usage(response)
            return LLMResponse(
                content=content,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                model=str(getattr(response, "model", None) or kwargs["model"]),
            )

        raise LLMError("No completion attempts were made")

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Run one completion and return only its text."""
        response = await self.generate_with_usage(
            prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.content

    async def generate_with_json(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Run a completion whose answer must be a JSON document.

        The JSON instruction is appended to the system prompt. Callers parse
        the returned text themselves, since models still wrap JSON in code
        fences now and then.
        """
        if temperature is None:
            try:
                temperature = load_settings().llm.json_temperature
            except (ValueError, OSError, ConfigError):
                # Settings not available (e.g., invalid WIKI_* variables in tests)
                temperature = JSON_TEMPERATURE
        system = f"{system_prompt}\n\n{JSON_INSTRUCTION}" if system_prompt else JSON_INSTRUCTION
        return await self.generate(
            prompt,
            system_prompt=system,
            temperature=temperature,
            max_tokens=max_tokens,
        )


def create_llm_client(settings=None) -> LLMClient:
    """Build a client for the configured provider."""
    if settings is None:
        settings = load_settings()
    return LLMClient(
        provider=settings.llm_provider,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        endpoint=settings.llm_endpoint,
        log_path=settings.llm_log_path,
        max_retries=settings.llm.max_retries,
        retry_base_delay=settings.llm.retry_base_delay,
    )
