"""LLM client for SEO recommendations from GigaChat or OpenAI."""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import openai
from gigachat import GigaChat
from gigachat.models import Chat, Messages, MessagesRole

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful SEO assistant."
DEFAULT_GIGACHAT_SCOPE = "GIGACHAT_API_PERS"
BUDGET_PERIOD_SECONDS = 30 * 24 * 60 * 60

PROVIDERS: dict[str, dict[str, Any]] = {
    "gigachat": {
        "label": "GigaChat",
        "base_url": None,
        "api_key_env": "GIGACHAT_ACCESS_TOKEN",
        "model": "GigaChat-2",
    },
    "openai": {
        "label": "OpenAI",
        "base_url": None,
        "api_key_env": "OPENAI_API_KEY",
        "model": "gpt-4o-mini",
    },
}


@dataclass
class UsageStats:
    """Tracks token usage and estimated cost."""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_requests: int = 0
    total_cost_usd: float = 0.0
    monthly_cost_usd: float = 0.0
    month_start: float = field(default_factory=time.time)

    def add_usage(self, input_tokens: int, output_tokens: int,
                  cost_per_1k_input: float = 0.00015,
                  cost_per_1k_output: float = 0.0006) -> float:
        """Record token usage and return cost for this call."""
        cost = (input_tokens / 1000) * cost_per_1k_input + \
               (output_tokens / 1000) * cost_per_1k_output
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_requests += 1
        self.total_cost_usd += cost
        self.monthly_cost_usd += cost
        return cost

    def reset_monthly(self) -> None:
        """Reset monthly counters."""
        self.monthly_cost_usd = 0.0
        self.month_start = time.time()


class LLMClient:
    """Async chat-completions client for one configured provider.

    GigaChat goes through the ``gigachat`` SDK: ``GIGACHAT_ACCESS_TOKEN``
    holds the authorization key, which the SDK exchanges for a short-lived
    access token and refreshes when it expires. OpenAI goes through the
    ``openai`` SDK. GigaChat certificates are issued by a national CA that
    most trust stores lack; ``verify_ssl=False`` lets the client connect
    without it.

    Usage::

        client = LLMClient(provider="gigachat")
        text = await client.generate_text("How do I rank for 'kitchens'?")
    """

    def __init__(
        self,
        provider: str = "gigachat",
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        scope: str = DEFAULT_GIGACHAT_SCOPE,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: int = 60,
        verify_ssl: bool = True,
        max_monthly_budget: float = 100.0,
        budget_warning_pct: float = 80.0,
        cost_per_1k_input: float = 0.00015,
        cost_per_1k_output: float = 0.0006,
    ):
        if provider not in PROVIDERS:
            raise ValueError(
                f"Unknown LLM provider {provider!r}; expected one of {sorted(PROVIDERS)}"
            )
        defaults = PROVIDERS[provider]

        self._provider = provider
        self._api_key = api_key or os.getenv(defaults["api_key_env"], "")
        self._model = model or defaults["model"]
        self._base_url = base_url or defaults["base_url"]
        self._scope = scope
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._cost_per_1k_input = cost_per_1k_input
        self._cost_per_1k_output = cost_per_1k_output

        self._client: Any = None
        if self._api_key:
            self._client = self._build_client(verify_ssl)

        # Usage tracking
        self.usage = UsageStats()
        self._max_monthly_budget = max_monthly_budget
        self._budget_warning_pct = budget_warning_pct

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def label(self) -> str:
        return PROVIDERS[self._provider]["label"]

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: str,
        system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Generate text from the configured model."""
        if self._client is None:
            env_name = PROVIDERS[self._provider]["api_key_env"]
            raise RuntimeError(f"No LLM provider configured. Set {env_name}.")

        max_tokens = max_tokens or self._max_tokens
        temperature = temperature if temperature is not None else self._temperature
        try:
            return await self._call_chat(prompt, system_prompt, max_tokens, temperature)
        except Exception as exc:
            logger.error("%s call failed: %s", self.label, exc)
            raise

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is None:
            return
        if self._provider == "gigachat":
            await self._client.aclose()
        else:
            await self._client.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_client(self, verify_ssl: bool) -> Any:
        if self._provider == "gigachat":
            options: dict[str, Any] = {
                "credentials": self._api_key,
                "scope": self._scope,
                "model": self._model,
                "verify_ssl_certs": verify_ssl,
                "timeout": self._timeout,
            }
            if self._base_url:
                options["base_url"] = self._base_url
            return GigaChat(**options)

        http_client = None
        if not verify_ssl:
            http_client = httpx.AsyncClient(verify=False, timeout=self._timeout)
        return openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            http_client=http_client,
        )

    async def _call_chat(
        self, prompt: str, system_prompt: Optional[str],
        max_tokens: int, temperature: float
    ) -> str:
        """Send one chat request; both SDKs answer with choices and usage."""
        self._check_budget()

        if self._provider == "gigachat":
            messages = []
            if system_prompt:
                messages.append(Messages(role=MessagesRole.SYSTEM, content=system_prompt))
            messages.append(Messages(role=MessagesRole.USER, content=prompt))
            response = await self._client.achat(
                Chat(
                    model=self._model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            )
        else:
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        if not response.choices:
            raise ValueError(f"{self.label} returned no choices")
        choice = response.choices[0].message.content or ""
        usage = response.usage
        if usage:
            cost = self.usage.add_usage(
                usage.prompt_tokens, usage.completion_tokens,
                self._cost_per_1k_input, self._cost_per_1k_output,
            )
            logger.info(
                "%s call: %d in / %d out tokens, $%.6f",
                self.label, usage.prompt_tokens, usage.completion_tokens, cost,
            )
        return choice.strip()

    def _check_budget(self) -> None:
        """Raise if monthly budget is exceeded; warn if approaching."""
        if time.time() - self.usage.month_start >= BUDGET_PERIOD_SECONDS:
            logger.info(
                "New LLM budget period; spent $%.2f in the last one",
                self.usage.monthly_cost_usd,
            )
            self.usage.reset_monthly()
        if self.usage.monthly_cost_usd >= self._max_monthly_budget:
            raise RuntimeError(
                f"Monthly LLM budget exceeded: ${self.usage.monthly_cost_usd:.2f} "
                f">= ${self._max_monthly_budget:.2f}"
            )
        warning_threshold = self._max_monthly_budget * (self._budget_warning_pct / 100)
        if self.usage.monthly_cost_usd >= warning_threshold:
            logger.warning(
                "LLM budget warning: $%.2f / $%.2f (%.0f%%)",
                self.usage.monthly_cost_usd,
                self._max_monthly_budget,
                (self.usage.monthly_cost_usd / self._max_monthly_budget) * 100,
            )

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def get_usage_summary(self) -> dict[str, Any]:
        """Return a summary of token usage and costs."""
        return {
            "provider": self._provider,
            "model": self._model,
            "total_requests": self.usage.total_requests,
            "total_input_tokens": self.usage.total_input_tokens,
            "total_output_tokens": self.usage.total_output_tokens,
            "total_cost_usd": round(self.usage.total_cost_usd, 6),
            "monthly_cost_usd": round(self.usage.monthly_cost_usd, 6),
            "max_monthly_budget": self._max_monthly_budget,
            "budget_remaining": round(
                self._max_monthly_budget - self.usage.monthly_cost_usd, 6
            ),
        }
