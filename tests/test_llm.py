"""LLM client tests."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from litellm.exceptions import AuthenticationError, RateLimitError

from wikigen.llm import (
    LLMAuthenticationError,
    LLMClient,
    LLMRateLimitError,
)


@pytest.fixture
def mock_completion():
    """Mock litellm completion response."""
    with patch("wikigen.llm.client.acompletion") as mock:
        mock.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content="Test response"))],
            usage=MagicMock(prompt_tokens=12, completion_tokens=34),
            model="gpt-4o",
        )
        yield mock


def _rate_limit_error() -> RateLimitError:
    return RateLimitError(
        message="Rate limit exceeded",
        llm_provider="openai",
        model="gpt-4o",
        response=httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com")),
    )


async def test_llm_client_generates_response(mock_completion):
    """LLM client generates response from prompt."""
    client = LLMClient(provider="openai", model="gpt-4o")

    response = await client.generate("Test prompt")

    assert response == "Test response"
    mock_completion.assert_called_once()


async def test_generate_with_usage_reports_tokens(mock_completion):
    client = LLMClient(provider="openai", model="gpt-4o")

    response = await client.generate_with_usage("Test prompt")

    assert response.content == "Test response"
    assert response.input_tokens == 12
    assert response.output_tokens == 34
    assert response.total_tokens == 46


async def test_llm_client_uses_configured_model(mock_completion):
    """LLM client uses configured provider and model."""
    client = LLMClient(provider="anthropic", model="claude-3-sonnet")

    await client.generate("Test")

    assert mock_completion.call_args.kwargs["model"] == "anthropic/claude-3-sonnet"


async def test_llm_client_ollama_uses_endpoint(mock_completion):
    client = LLMClient(provider="ollama", model="llama3", endpoint="http://gpu-box:11434")

    await client.generate("Test")

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "ollama/llama3"
    assert kwargs["api_base"] == "http://gpu-box:11434"


async def test_llm_client_passes_system_prompt(mock_completion):
    """LLM client includes system prompt in messages."""
    client = LLMClient(provider="openai", model="gpt-4o")

    await client.generate("User message", system_prompt="You write wiki pages")

    messages = mock_completion.call_args.kwargs["messages"]
    assert messages[0] == {"role": "system", "content": "You write wiki pages"}
    assert messages[1] == {"role": "user", "content": "User message"}


async def test_generate_with_json_adds_instruction(mock_completion):
    """generate_with_json adds JSON instruction to system prompt."""
    client = LLMClient(provider="openai", model="gpt-4o")

    await client.generate_with_json("Extract entities", system_prompt="You are an extractor.")

    kwargs = mock_completion.call_args.kwargs
    assert "Respond with valid JSON only." in kwargs["messages"][0]["content"]
    assert kwargs["temperature"] == 0.3


async def test_authentication_error_is_not_retried(mock_completion):
    """Authentication failures are raised immediately."""
    mock_completion.side_effect = AuthenticationError(
        message="Invalid API key", llm_provider="openai", model="gpt-4o"
    )
    client = LLMClient(provider="openai", model="gpt-4o", max_retries=3, retry_base_delay=0)

    with pytest.raises(LLMAuthenticationError):
        await client.generate("Test")

    assert mock_completion.call_count == 1


async def test_transient_error_is_retried_then_succeeds(mock_completion):
    success = mock_completion.return_value
    mock_completion.side_effect = [_rate_limit_error(), success]
    client = LLMClient(provider="openai", model="gpt-4o", max_retries=2, retry_base_delay=0)

    with patch("wikigen.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
        response = await client.generate("Test")

    assert response == "Test response"
    assert mock_completion.call_count == 2
    sleep.assert_awaited_once()


async def test_rate_limit_after_retries_raises(mock_completion):
    mock_completion.side_effect = _rate_limit_error()
    client = LLMClient(provider="openai", model="gpt-4o", max_retries=1, retry_base_delay=0)

    with patch("wikigen.llm.client.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(LLMRateLimitError):
            await client.generate("Test")

    assert mock_completion.call_count == 2


async def test_queries_are_logged_as_jsonl(mock_completion, tmp_path):
    log_path = tmp_path / "logs" / "llm.jsonl"
    client = LLMClient(provider="openai", model="gpt-4o", log_path=log_path)

    await client.generate("Test prompt")

    lines = log_path.read_text().strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["response"] == "Test response"
    assert entry["error"] is None
