"""LLM narrative generator adapter.

Implements NarrativeGeneratorProtocol with the OpenAI SDK. Mistral is served
through its OpenAI-compatible endpoint, so the provider only changes the base
URL, API key and default model.
"""

import json
import re
import time
from collections.abc import Sequence
from typing import Any, Final

from openai import APIError, AsyncOpenAI
from openai import RateLimitError as OpenAIRateLimitError
from pydantic import ValidationError as PydanticValidationError

from channelsense.config.logging_config import get_logger
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import NarrativeGenerationError
from channelsense.domain.models import (
    Message,
    NarrativeResult,
    SentimentResult,
    SentimentScores,
)
from channelsense.domain.protocols import NarrativeGeneratorProtocol

logger = get_logger(__name__)

MISTRAL_BASE_URL: Final[str] = "https://api.mistral.ai/v1"

DEFAULT_MODELS: Final[dict[str, str]] = {
    "openai": "gpt-3.5-turbo",
    "mistral": "mistral-large-latest",
}

INSIGHT_CONTEXT_MESSAGES: Final[int] = 20
"""Messages quoted in the insights prompt."""

SENTIMENT_CONTEXT_MESSAGES: Final[int] = 10
"""Messages quoted in the sentiment prompt."""

INSIGHTS_MAX_TOKENS: Final[int] = 300
SENTIMENT_MAX_TOKENS: Final[int] = 200
SENTIMENT_TEMPERATURE: Final[float] = 0.3

INSIGHTS_SYSTEM_PROMPT: Final[str] = (
    "You are an expert community analyst specializing in Telegram channel "
    "analytics. Provide clear, actionable insights based on message data."
)

SENTIMENT_SYSTEM_PROMPT: Final[str] = (
    "You are a sentiment analysis expert. Analyze the emotional tone of social "
    "media messages and respond only with valid JSON."
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_sentiment_content(content: str) -> SentimentScores:
    """Parse the model's JSON answer into SentimentScores.

    Markdown code fences around the JSON are tolerated; fractional
    percentages are rounded.

    Raises:
        NarrativeGenerationError: If the content is not the expected JSON
    """
    cleaned = _CODE_FENCE_RE.sub("", content.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise NarrativeGenerationError(f"Invalid JSON from LLM: {e}") from e

    if not isinstance(payload, dict):
        raise NarrativeGenerationError("Sentiment response must be a JSON object")

    for key in ("positive", "neutral", "negative"):
        value = payload.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool):
            payload[key] = round(value)

    try:
        return SentimentScores.model_validate(payload)
    except PydanticValidationError as e:
        raise NarrativeGenerationError(f"Sentiment validation failed: {e}") from e


class OpenAINarrativeGenerator:
    """Chat-completions client for channel insights and sentiment."""

    def __init__(
        self,
        api_key: str,
        *,
        provider: str = "openai",
        model: str | None = None,
        temperature: float = 0.7,
        timeout: int = 60,
    ) -> None:
        """Initialize generator.

        Args:
            api_key: Provider API key
            provider: "openai" or "mistral"
            model: Model name (provider default when None)
            temperature: Sampling temperature for insights
            timeout: Request timeout in seconds
        """
        if provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported LLM provider: {provider}")

        base_url = MISTRAL_BASE_URL if provider == "mistral" else None
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.provider = provider
        self.model = model or DEFAULT_MODELS[provider]
        self.temperature = temperature

        logger.info("narrative_generator_ready", provider=provider, model=self.model)

    async def generate_insights(
        self, messages: list[Message], metrics: dict[str, Any]
    ) -> NarrativeResult:
        """Short free-text assessment of recent channel activity."""
        if not messages:
            return NarrativeResult(error="no messages to analyze")

        prompt = self._build_insights_prompt(messages, metrics)
        try:
            text = await self._complete(
                INSIGHTS_SYSTEM_PROMPT,
                prompt,
                max_tokens=INSIGHTS_MAX_TOKENS,
                temperature=self.temperature,
            )
        except NarrativeGenerationError as e:
            logger.warning("narrative_insights_failed", error=str(e))
            return NarrativeResult(error=str(e))
        return NarrativeResult(text=text)

    async def generate_sentiment(self, messages: list[Message]) -> SentimentResult:
        """Positive/neutral/negative shares for a batch of messages."""
        if not messages:
            return SentimentResult(error="no messages to analyze")

        prompt = self._build_sentiment_prompt(messages)
        try:
            content = await self._complete(
                SENTIMENT_SYSTEM_PROMPT,
                prompt,
                max_tokens=SENTIMENT_MAX_TOKENS,
                temperature=SENTIMENT_TEMPERATURE,
            )
            scores = parse_sentiment_content(content)
        except NarrativeGenerationError as e:
            logger.warning("narrative_sentiment_failed", error=str(e))
            return SentimentResult(error=str(e))
        return SentimentResult(scores=scores)

    async def _complete(
        self, system_prompt: str, prompt: str, *, max_tokens: int, temperature: float
    ) -> str:
        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIRateLimitError as e:
            raise NarrativeGenerationError(f"Rate limit exceeded: {e}") from e
        except APIError as e:
            raise NarrativeGenerationError(f"LLM API error: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)
        content = response.choices[0].message.content if response.choices else None
        tokens_in = response.usage.prompt_tokens if response.usage else 0
        tokens_out = response.usage.completion_tokens if response.usage else 0
        logger.info(
            "llm_call_completed",
            provider=self.provider,
            model=self.model,
            latency_ms=latency_ms,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
        )

        if not content or not content.strip():
            raise NarrativeGenerationError("Empty response from LLM")
        return content.strip()

    @staticmethod
    def _build_insights_prompt(
        messages: Sequence[Message], metrics: dict[str, Any]
    ) -> str:
        context = [
            {
                "user": message.user_id,
                "text": message.text,
                "timestamp": message.sent_at.isoformat(),
            }
            for message in messages[:INSIGHT_CONTEXT_MESSAGES]
        ]
        prompt_parts = [
            "Analyze this Telegram channel activity and provide insights.",
            "",
            "Channel Metrics:",
            f"- Total Messages: {metrics.get('total_messages', 0)}",
            f"- Active Users: {metrics.get('active_users', 0)}",
            f"- Average Messages per User: {metrics.get('avg_messages_per_user', 0)}",
            "",
            "Recent Messages:",
            json.dumps(context, indent=2, ensure_ascii=False),
            "",
            "Please analyze:",
            "1. Community engagement quality",
            "2. Discussion topics and themes",
            "3. User interaction patterns",
            "4. Channel health assessment",
            "5. Recommendations for improvement",
            "",
            "Keep the response concise (max 200 words) and actionable.",
        ]
        return "\n".join(prompt_parts)

    @staticmethod
    def _build_sentiment_prompt(messages: Sequence[Message]) -> str:
        texts = "\n".join(
            message.text or "" for message in messages[:SENTIMENT_CONTEXT_MESSAGES]
        )
        prompt_parts = [
            "Analyze the sentiment of these Telegram messages and respond with "
            "JSON in this exact format:",
            "{",
            '  "positive": number (0-100),',
            '  "neutral": number (0-100),',
            '  "negative": number (0-100),',
            '  "summary": "Brief 1-2 sentence summary of the overall sentiment '
            'and key themes"',
            "}",
            "",
            "The percentages should add up to 100.",
            "",
            "Messages:",
            texts,
        ]
        return "\n".join(prompt_parts)


class UnconfiguredNarrativeGenerator:
    """Stand-in used when no LLM API key is configured."""

    REASON: Final[str] = "LLM API key not configured"

    async def generate_insights(
        self, messages: list[Message], metrics: dict[str, Any]
    ) -> NarrativeResult:
        return NarrativeResult(error=self.REASON)

    async def generate_sentiment(self, messages: list[Message]) -> SentimentResult:
        return SentimentResult(error=self.REASON)


def create_narrative_generator(settings: Settings) -> NarrativeGeneratorProtocol:
    """Create the narrative generator for the configured provider.

    The provider is chosen once here; an absent key yields a generator that
    reports every call as unavailable so reports fall back to canned text.
    """
    secret = (
        settings.mistral_api_key
        if settings.llm_provider == "mistral"
        else settings.openai_api_key
    )
    if secret is None or not secret.get_secret_value():
        logger.warning(
            "narrative_generator_unconfigured", provider=settings.llm_provider
        )
        return UnconfiguredNarrativeGenerator()

    return OpenAINarrativeGenerator(
        secret.get_secret_value(),
        provider=settings.llm_provider,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        timeout=settings.llm_timeout_seconds,
    )
