"""Tests for the LLM narrative generator."""

import asyncio
from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIError
from pydantic import SecretStr

from channelsense.adapters.narrative_generator import (
    DEFAULT_MODELS,
    MISTRAL_BASE_URL,
    OpenAINarrativeGenerator,
    UnconfiguredNarrativeGenerator,
    create_narrative_generator,
    parse_sentiment_content,
)
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import NarrativeGenerationError
from channelsense.domain.models import Message


def fake_completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=40),
    )


def generator_with(create: AsyncMock) -> OpenAINarrativeGenerator:
    generator = OpenAINarrativeGenerator("sk-test")
    generator.client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create))
    )
    return generator


class TestParseSentimentContent:
    def test_plain_json(self) -> None:
        scores = parse_sentiment_content(
            '{"positive": 60, "neutral": 30, "negative": 10, "summary": "Upbeat."}'
        )

        assert (scores.positive, scores.neutral, scores.negative) == (60, 30, 10)
        assert scores.summary == "Upbeat."

    def test_code_fence_and_fractions(self) -> None:
        content = (
            "```json\n"
            '{"positive": 33.4, "neutral": 33.3, "negative": 33.3, "summary": ""}\n'
            "```"
        )

        scores = parse_sentiment_content(content)

        assert (scores.positive, scores.neutral, scores.negative) == (33, 33, 33)

    @pytest.mark.parametrize(
        "content",
        [
            "I think it is mostly positive",
            "[60, 30, 10]",
            '{"positive": 160, "neutral": 0, "negative": 0}',
            '{"positive": 60}',
        ],
    )
    def test_invalid_content(self, content: str) -> None:
        with pytest.raises(NarrativeGenerationError):
            parse_sentiment_content(content)


class TestOpenAINarrativeGenerator:
    def test_sentiment_success(self, make_message: Callable[..., Message]) -> None:
        create = AsyncMock(
            return_value=fake_completion(
                '{"positive": 70, "neutral": 20, "negative": 10, "summary": "Good."}'
            )
        )
        generator = generator_with(create)

        result = asyncio.run(generator.generate_sentiment([make_message()]))

        assert result.ok
        assert result.scores is not None
        assert result.scores.positive == 70
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == DEFAULT_MODELS["openai"]
        assert kwargs["temperature"] == 0.3
        assert "hello there" in kwargs["messages"][1]["content"]

    def test_insights_prompt_carries_metrics(
        self, make_message: Callable[..., Message]
    ) -> None:
        create = AsyncMock(return_value=fake_completion("  Healthy channel.  "))
        generator = generator_with(create)

        result = asyncio.run(
            generator.generate_insights(
                [make_message(text="wen airdrop")],
                {"total_messages": 42, "active_users": 7, "avg_messages_per_user": 6.0},
            )
        )

        assert result.text == "Healthy channel."
        prompt = create.call_args.kwargs["messages"][1]["content"]
        assert "Total Messages: 42" in prompt
        assert "wen airdrop" in prompt

    def test_api_error_becomes_result_error(
        self, make_message: Callable[..., Message]
    ) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        create = AsyncMock(side_effect=APIError("upstream failure", request, body=None))
        generator = generator_with(create)

        insights = asyncio.run(generator.generate_insights([make_message()], {}))
        sentiment = asyncio.run(generator.generate_sentiment([make_message()]))

        assert not insights.ok
        assert "upstream failure" in (insights.error or "")
        assert not sentiment.ok

    def test_empty_answer_is_an_error(
        self, make_message: Callable[..., Message]
    ) -> None:
        generator = generator_with(AsyncMock(return_value=fake_completion("   ")))

        result = asyncio.run(generator.generate_insights([make_message()], {}))

        assert result.error == "Empty response from LLM"

    def test_no_messages_skips_the_call(self) -> None:
        create = AsyncMock()
        generator = generator_with(create)

        assert not asyncio.run(generator.generate_sentiment([])).ok
        create.assert_not_called()

    def test_mistral_uses_compatible_endpoint(self) -> None:
        generator = OpenAINarrativeGenerator("mistral-key", provider="mistral")

        assert str(generator.client.base_url).rstrip("/") == MISTRAL_BASE_URL
        assert generator.model == "mistral-large-latest"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            OpenAINarrativeGenerator("key", provider="anthropic")


class TestFactory:
    def test_missing_key_gives_unconfigured_generator(self, settings: Settings) -> None:
        unconfigured = settings.model_copy(update={"openai_api_key": None})

        generator = create_narrative_generator(unconfigured)

        assert isinstance(generator, UnconfiguredNarrativeGenerator)
        result = asyncio.run(generator.generate_insights([], {}))
        assert result.error == UnconfiguredNarrativeGenerator.REASON

    def test_key_for_selected_provider(self, settings: Settings) -> None:
        configured = settings.model_copy(
            update={
                "llm_provider": "mistral",
                "mistral_api_key": SecretStr("mistral-key"),
                "llm_model": "mistral-small-latest",
            }
        )

        generator = create_narrative_generator(configured)

        assert isinstance(generator, OpenAINarrativeGenerator)
        assert generator.model == "mistral-small-latest"
