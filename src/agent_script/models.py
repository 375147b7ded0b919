# models.py
# Data contracts for the agent engine.
# Pure schema and validation, no engine behaviour.

from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """One message of a model conversation."""

    role: Role
    content: str = Field(default="", description="Plain text content.")
    images: list[str] | None = Field(
        default=None, description="Image URLs or data URIs attached to a user message."
    )


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    """What a ChatModel returns for one completion request."""

    message: ChatMessage
    usage: TokenUsage = Field(default_factory=TokenUsage)


class ToolCallRecord(BaseModel):
    """A completed tool call made from inside a sandboxed script."""

    tool_name: str
    kind: str = Field(..., description="ToolKind value of the tool that was called.")
    return_value: Any = None


class ScriptResult(BaseModel):
    """Outcome of one sandboxed script execution."""

    result: Any = None
    output: str = Field(default="", description="Buffered print output.")
    is_final_answer: bool = False
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
