# config.py
# Runtime configuration. Values come from keyword arguments first, then from
# AGENT_SCRIPT_* environment variables (a local .env is loaded on import).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from agent_script.display import LogLevel

load_dotenv()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o"

DEFAULT_AUTHORIZED_IMPORTS = (
    "asyncio",
    "collections",
    "datetime",
    "itertools",
    "json",
    "math",
    "random",
    "re",
    "statistics",
    "time",
)


class ModelSettings(BaseModel):
    """Connection settings for the OpenAI-compatible chat endpoint."""

    model: str = DEFAULT_MODEL
    base_url: str = OPENROUTER_BASE_URL
    api_key: str | None = None
    temperature: float = 0.0
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0.0)

    @classmethod
    def from_env(cls) -> "ModelSettings":
        return cls(
            model=os.getenv("AGENT_SCRIPT_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("AGENT_SCRIPT_BASE_URL", OPENROUTER_BASE_URL),
            api_key=os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY"),
        )


class AgentConfig(BaseModel):
    """Bounds and policies of one CodeAgent."""

    name: str = "code_agent"
    description: str = "An agent that solves tasks by writing and running Python code."
    max_steps: int = Field(default=10, ge=1)
    planning_interval: int | None = Field(default=None, ge=1)
    initial_planning: bool | None = Field(
        default=None,
        description="Plan before the first step. Defaults to whether planning_interval is set.",
    )
    max_memory_token_count: int = Field(default=128_000, ge=1)
    authorized_imports: list[str] = Field(default_factory=lambda: list(DEFAULT_AUTHORIZED_IMPORTS))
    script_timeout: float | None = Field(default=None, gt=0)
    strict_code_pattern: bool = Field(
        default=False,
        description="Reject responses without a fenced code block instead of running them as-is.",
    )
    provide_run_summary: bool = False
    verbosity: LogLevel = LogLevel.INFO

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        env: dict = {}
        if value := os.getenv("AGENT_SCRIPT_MAX_STEPS"):
            env["max_steps"] = int(value)
        if value := os.getenv("AGENT_SCRIPT_PLANNING_INTERVAL"):
            env["planning_interval"] = int(value)
        if value := os.getenv("AGENT_SCRIPT_SCRIPT_TIMEOUT"):
            env["script_timeout"] = float(value)
        if value := os.getenv("AGENT_SCRIPT_VERBOSITY"):
            env["verbosity"] = LogLevel[value.upper()]
        env.update(overrides)
        return cls(**env)
