"""LLM client for template completion and filter-criteria prompts.

Wraps OpenAI's chat completions API in two flavours:
- ``generate()``: Instructor-validated structured responses (Pydantic models)
- ``complete()``: plain text / JSON-mode responses that are validated later

Both share retry with exponential backoff, cooperative cancellation,
prompt-hash logging and token usage tracking.
"""

import hashlib
import logging
import os
import threading
import time
from typing import Any, Callable, Optional, Type, TypeVar

import instructor
from openai import OpenAI
from pydantic import BaseModel

from template_agent.exceptions import LLMClientError, MissingCredentialError, OperationCancelled
from template_agent.utils.cancellation import CancellationToken, raise_if_cancelled

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")

logger = logging.getLogger(__name__)


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0


class LLMClient:
    """OpenAI client with Instructor support, retries and cancellation.

    Features:
    - Structured responses validated against Pydantic models (Instructor)
    - Raw text completions with optional JSON mode
    - Retry with exponential backoff (3 attempts by default)
    - Cancellation checked before every attempt and during backoff
    - Token usage tracking and cost estimation
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI API key (if None, uses OPENAI_API_KEY env var)
            model: Model name (if None, uses LLM_MODEL env var or gpt-4o-mini)
            max_retries: Maximum number of attempts per call (default: 3)
            base_delay: Base delay for exponential backoff in seconds (default: 1.0)
            max_delay: Maximum delay between retries in seconds (default: 30.0)

        Raises:
            MissingCredentialError: If no API key is available
        """
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise MissingCredentialError(
                "OpenAI API key is missing. Set OPENAI_API_KEY or pass an API key."
            )

        self.model = model or os.getenv("LLM_MODEL", "gpt-4o-mini")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.total_usage = TokenUsage()
        self._usage_lock = threading.Lock()

        self.openai = OpenAI(api_key=api_key)
        self.client = instructor.from_openai(self.openai)

        logger.info(f"LLMClient initialized with model={self.model}, max_retries={max_retries}")

    def generate(
        self,
        prompt: str,
        response_model: Type[T],
        temperature: float = 0.3,
        max_tokens: int = 256,
        system_prompt: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """Generate a structured response validated against ``response_model``.

        Args:
            prompt: User prompt
            response_model: Pydantic model class for the answer
            temperature: Sampling temperature
            max_tokens: Completion token limit
            system_prompt: Optional system prompt
            cancel_token: Optional cancellation token

        Returns:
            Validated Pydantic model instance

        Raises:
            OperationCancelled: If the token is triggered
            LLMClientError: If all attempts fail
        """

        def _call() -> T:
            response = self.client.chat.completions.create(
                **self._build_params(
                    self._messages(prompt, system_prompt), temperature, max_tokens
                ),
                response_model=response_model,
            )
            raw = getattr(response, "_raw_response", None)
            self._track_usage(getattr(raw, "usage", None))
            return response

        return self._with_retries(_call, prompt, response_model.__name__, cancel_token)

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Return the raw text of a chat completion.

        With ``json_mode`` the provider is asked for a JSON object; callers
        must still validate the text, since not every model honours it.

        Raises:
            OperationCancelled: If the token is triggered
            LLMClientError: If all attempts fail
        """

        def _call() -> str:
            params = self._build_params(
                self._messages(prompt, system_prompt), temperature, max_tokens
            )
            if json_mode:
                params["response_format"] = {"type": "json_object"}
            response = self.openai.chat.completions.create(**params)
            self._track_usage(getattr(response, "usage", None))
            if not response.choices:
                return ""
            return response.choices[0].message.content or ""

        return self._with_retries(_call, prompt, "text", cancel_token)

    def _messages(self, prompt: str, system_prompt: Optional[str]) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _build_params(self, messages: list, temperature: float, max_tokens: int) -> dict:
        params: dict = {"model": self.model, "messages": messages}
        # gpt-5 and o-series models only accept the default temperature and
        # use max_completion_tokens
        if self.model.startswith(("gpt-5", "o1", "o3", "o4")):
            params["max_completion_tokens"] = max_tokens
        else:
            params["max_tokens"] = max_tokens
            params["temperature"] = temperature
        return params

    def _with_retries(
        self,
        call: Callable[[], R],
        prompt: str,
        label: str,
        cancel_token: Optional[CancellationToken],
    ) -> R:
        prompt_hash = self._hash_prompt(prompt)
        logger.info(
            f"LLM request: model={self.model}, response={label}, prompt_hash={prompt_hash}"
        )

        last_exception: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            raise_if_cancelled(cancel_token)
            start_time = time.time()
            try:
                result = call()
            except OperationCancelled:
                raise
            except Exception as e:
                last_exception = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed: {str(e)[:200]}",
                    extra={
                        "prompt_hash": prompt_hash,
                        "latency_ms": round((time.time() - start_time) * 1000, 2),
                    },
                )
                if attempt < self.max_retries:
                    delay = self._calculate_backoff_delay(attempt)
                    logger.info(f"Retrying in {delay:.2f} seconds...")
                    if cancel_token is not None:
                        cancel_token.wait(delay)
                    else:
                        time.sleep(delay)
                continue

            logger.info(
                f"LLM response: prompt_hash={prompt_hash}, attempt={attempt}",
                extra={
                    "prompt_hash": prompt_hash,
                    "latency_ms": round((time.time() - start_time) * 1000, 2),
                    "attempt": attempt,
                },
            )
            return result

        logger.error(f"All {self.max_retries} attempts failed for prompt_hash={prompt_hash}")
        raise LLMClientError(
            f"LLM request failed after {self.max_retries} attempts. "
            f"Last error: {last_exception}"
        )

    def _track_usage(self, raw_usage: Any) -> None:
        if raw_usage is None:
            return
        details = getattr(raw_usage, "prompt_tokens_details", None)
        # Criteria prompts run on several worker threads at once
        with self._usage_lock:
            self.total_usage.prompt_tokens += getattr(raw_usage, "prompt_tokens", 0) or 0
            self.total_usage.completion_tokens += getattr(raw_usage, "completion_tokens", 0) or 0
            self.total_usage.total_tokens += getattr(raw_usage, "total_tokens", 0) or 0
            if details is not None:
                self.total_usage.cached_tokens += getattr(details, "cached_tokens", 0) or 0

    def get_usage_summary(self) -> dict:
        """Summarize token usage with an estimated cost in USD."""
        # Per 1M tokens
        costs = {
            "gpt-4o-mini": {"input": 0.15, "output": 0.6, "cached": 0.075},
            "gpt-4o": {"input": 2.5, "output": 10, "cached": 1.25},
            "gpt-4.1-mini": {"input": 0.4, "output": 1.6, "cached": 0.1},
            "gpt-4.1": {"input": 2, "output": 8, "cached": 0.5},
            "gpt-5-mini": {"input": 0.25, "output": 2, "cached": 0.025},
        }
        model_cost = costs.get(self.model, costs["gpt-4o-mini"])
        usage = self.total_usage

        uncached_prompt = usage.prompt_tokens - usage.cached_tokens
        input_cost = (
            uncached_prompt * model_cost["input"] + usage.cached_tokens * model_cost["cached"]
        ) / 1_000_000
        output_cost = usage.completion_tokens * model_cost["output"] / 1_000_000

        return {
            "model": self.model,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "cached_tokens": usage.cached_tokens,
            "estimated_cost_usd": round(input_cost + output_cost, 4),
        }

    def _hash_prompt(self, prompt: str) -> str:
        return hashlib.sha256(prompt.encode()).hexdigest()[:16]

    def _calculate_backoff_delay(self, attempt: int) -> float:
        delay = self.base_delay * (2 ** (attempt - 1))
        return min(delay, self.max_delay)
