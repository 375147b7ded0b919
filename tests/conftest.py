"""
Shared fixtures: a chat model that replays scripted responses, a silent
logger, and an agent factory wired to both.
"""

import pytest

from agent_script.agent import CodeAgent
from agent_script.chat_model import ChatModel
from agent_script.display import AgentLogger, LogLevel
from agent_script.models import ChatMessage, ChatResponse
from agent_script.tools import FinalAnswerTool


class ScriptedModel(ChatModel):
    """Returns the queued responses in order; queued exceptions are raised."""

    model_id = "scripted"

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def chat_completion(self, messages, stop=None):
        self.calls.append({"messages": list(messages), "stop": stop})
        if not self.responses:
            raise RuntimeError("ScriptedModel has no responses left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return ChatResponse(message=ChatMessage(role="assistant", content=item))


def fenced(script: str) -> str:
    return f"Thought: let me do this.\nCode:\n```python\n{script}\n```"


@pytest.fixture
def quiet_logger():
    return AgentLogger(level=LogLevel.OFF)


@pytest.fixture
def scripted_model():
    return ScriptedModel


@pytest.fixture
def code():
    return fenced


@pytest.fixture
def make_agent(quiet_logger):
    def factory(responses, tools=None, **kwargs):
        return CodeAgent(
            tools=tools if tools is not None else [FinalAnswerTool()],
            model=ScriptedModel(responses),
            logger=quiet_logger,
            **kwargs,
        )

    return factory
