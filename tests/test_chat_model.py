from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_script.chat_model import OpenAIChatModel
from agent_script.config import AgentConfig, ModelSettings
from agent_script.display import LogLevel
from agent_script.errors import ChatCompletionError
from agent_script.models import ChatMessage
from agent_script.utils import to_openai_messages


def completion(content="hi", choices=True):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)] if choices else [],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=1, total_tokens=4),
    )


def make_model(create):
    client = MagicMock()
    client.chat.completions.create = create
    settings = ModelSettings(model="test/model", api_key="test-key", backoff_seconds=0.0)
    return OpenAIChatModel(settings, client=client)


# ---------------------------------------------------------------------------
# Message Conversion Tests
# ---------------------------------------------------------------------------

def test_to_openai_messages_plain_text():
    messages = [ChatMessage(role="system", content="sys"), ChatMessage(role="assistant", content="ok")]
    assert to_openai_messages(messages) == [
        {"role": "system", "content": "sys"},
        {"role": "assistant", "content": "ok"},
    ]

def test_to_openai_messages_images_become_content_parts():
    [converted] = to_openai_messages([ChatMessage(role="user", content="look", images=["https://x/y.png"])])
    assert converted == {
        "role": "user",
        "content": [
            {"type": "text", "text": "look"},
            {"type": "image_url", "image_url": {"url": "https://x/y.png"}},
        ],
    }


# ---------------------------------------------------------------------------
# OpenAIChatModel Tests
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_completion_returns_message_and_usage():
    create = AsyncMock(return_value=completion("hello there"))
    model = make_model(create)

    response = await model.chat_completion([ChatMessage(role="user", content="hi")], stop=["<end_code>"])

    assert response.message == ChatMessage(role="assistant", content="hello there")
    assert response.usage.total_tokens == 4
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "test/model"
    assert kwargs["stop"] == ["<end_code>"]
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

@pytest.mark.asyncio
async def test_chat_completion_omits_empty_stop():
    create = AsyncMock(return_value=completion())
    await make_model(create).chat_completion([ChatMessage(role="user", content="hi")])
    assert "stop" not in create.await_args.kwargs

@pytest.mark.asyncio
async def test_no_choices_raises_chat_completion_error():
    model = make_model(AsyncMock(return_value=completion(choices=False)))
    with pytest.raises(ChatCompletionError, match="No message returned"):
        await model.chat_completion([ChatMessage(role="user", content="hi")])

@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    create = AsyncMock(side_effect=[ConnectionError("reset"), completion("second try")])
    response = await make_model(create).chat_completion([ChatMessage(role="user", content="hi")])
    assert response.message.content == "second try"
    assert create.await_count == 2

@pytest.mark.asyncio
async def test_exhausted_retries_raise_with_original_error():
    original = ConnectionError("down")
    create = AsyncMock(side_effect=original)

    with pytest.raises(ChatCompletionError) as exc_info:
        await make_model(create).chat_completion([ChatMessage(role="user", content="hi")])

    assert exc_info.value.original_error is original
    assert create.await_count == 3


# ---------------------------------------------------------------------------
# Configuration Tests
# ---------------------------------------------------------------------------

def test_model_settings_from_env(monkeypatch):
    monkeypatch.setenv("AGENT_SCRIPT_MODEL", "openai/gpt-4o-mini")
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = ModelSettings.from_env()

    assert settings.model == "openai/gpt-4o-mini"
    assert settings.api_key == "sk-test"

def test_agent_config_from_env_with_overrides(monkeypatch):
    monkeypatch.setenv("AGENT_SCRIPT_MAX_STEPS", "4")
    monkeypatch.setenv("AGENT_SCRIPT_VERBOSITY", "debug")
    monkeypatch.setenv("AGENT_SCRIPT_PLANNING_INTERVAL", "2")

    config = AgentConfig.from_env(planning_interval=5)

    assert config.max_steps == 4
    assert config.verbosity is LogLevel.DEBUG
    assert config.planning_interval == 5
    assert "math" in config.authorized_imports
