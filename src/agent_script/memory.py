# memory.py
# Agent memory: the ordered record of a run, and how it is replayed to the
# model as chat messages.
#
# Steps are plain data. Each one knows how to render itself; AgentMemory
# owns ordering, compaction and replay to the terminal.

import json
import time
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

from agent_script.display import AgentLogger, LogLevel
from agent_script.errors import AgentError
from agent_script.models import ChatMessage, TokenUsage
from agent_script.utils import estimate_token_count, truncate_content

RETRY_HINT = (
    "Now let's retry: take care not to repeat previous errors! "
    "If you have retried several times, try a completely different approach."
)

COMPACTED_OBSERVATION_LENGTH = 1000


class MemoryStep(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_messages(self, summary_mode: bool = False, show_model_input_messages: bool = False) -> list[ChatMessage]:
        raise NotImplementedError

    def to_dict(self, include_model_input_messages: bool = True) -> dict[str, Any]:
        exclude = None if include_model_input_messages else {"model_input_messages"}
        data = self.model_dump(exclude=exclude)
        data["type"] = type(self).__name__
        error = getattr(self, "error", None)
        if error is not None:
            data["error"] = error.to_dict()
        return data


class SystemPromptStep(MemoryStep):
    system_prompt: str

    def to_messages(self, summary_mode: bool = False, show_model_input_messages: bool = False) -> list[ChatMessage]:
        if summary_mode:
            return []
        return [ChatMessage(role="system", content=self.system_prompt)]


class TaskStep(MemoryStep):
    task: str
    task_images: list[str] | None = None

    def to_messages(self, summary_mode: bool = False, show_model_input_messages: bool = False) -> list[ChatMessage]:
        return [ChatMessage(role="user", content=f"New task:\n{self.task}", images=self.task_images)]


class PlanningStep(MemoryStep):
    model_input_messages: list[ChatMessage] = Field(default_factory=list)
    model_output_message_facts: ChatMessage | None = None
    facts: str = ""
    model_output_message_plan: ChatMessage | None = None
    plan: str = ""

    def to_messages(self, summary_mode: bool = False, show_model_input_messages: bool = False) -> list[ChatMessage]:
        messages = [ChatMessage(role="assistant", content=f"[FACTS LIST]:\n{self.facts.strip()}")]
        if not summary_mode:
            messages.append(ChatMessage(role="assistant", content=f"[PLAN]:\n{self.plan.strip()}"))
        return messages


class ActionStep(MemoryStep):
    step_number: int
    start_time: float = Field(default_factory=time.time)
    end_time: float | None = None
    duration: float | None = None
    model_input_messages: list[ChatMessage] | None = None
    model_output_message: ChatMessage | None = None
    model_output: str | None = None
    code: str | None = None
    observations: str | None = None
    observations_images: list[str] | None = None
    action_output: Any = None
    error: AgentError | None = None
    token_usage: TokenUsage | None = None

    def to_messages(self, summary_mode: bool = False, show_model_input_messages: bool = False) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if self.model_input_messages and show_model_input_messages:
            rendered = json.dumps([m.model_dump(exclude_none=True) for m in self.model_input_messages], indent=2)
            messages.append(ChatMessage(role="system", content=rendered))
        if self.model_output and not summary_mode:
            messages.append(ChatMessage(role="assistant", content=self.model_output.strip()))
        if self.observations is not None:
            messages.append(
                ChatMessage(
                    role="user",
                    content=f"Observation:\n{self.observations}",
                    images=self.observations_images,
                )
            )
        if self.error is not None:
            messages.append(ChatMessage(role="user", content=f"Error:\n{self.error.message}\n{RETRY_HINT}\n"))
        return messages


Step = Union[TaskStep, PlanningStep, ActionStep]


class AgentMemory:
    """
    The system prompt plus the ordered steps of the current run.

    Example:
        memory = AgentMemory("You are a helpful agent.")
        memory.steps.append(TaskStep(task="What is 2 + 2?"))
        messages = memory.to_messages()
    """

    def __init__(self, system_prompt: str) -> None:
        self.system_prompt = SystemPromptStep(system_prompt=system_prompt)
        self.steps: list[Step] = []

    def reset(self) -> None:
        self.steps = []

    def to_messages(self, summary_mode: bool = False) -> list[ChatMessage]:
        messages = self.system_prompt.to_messages(summary_mode=summary_mode)
        for step in self.steps:
            messages.extend(step.to_messages(summary_mode=summary_mode))
        return messages

    def action_steps(self) -> list[ActionStep]:
        return [step for step in self.steps if isinstance(step, ActionStep)]

    def get_succinct_steps(self) -> list[dict]:
        return [step.to_dict(include_model_input_messages=False) for step in self.steps]

    def get_full_steps(self) -> list[dict]:
        return [step.to_dict() for step in self.steps]

    def compact(self, max_token_count: int) -> int:
        """
        Shrink older action steps until the rendered memory fits the budget.

        Observation images are dropped first, then observations are truncated.
        The newest action step and every non-action step stay intact.
        Returns the number of steps that were changed.
        """
        if estimate_token_count(self.to_messages()) <= max_token_count:
            return 0

        pruned = 0
        for step in self.action_steps()[:-1]:
            changed = False
            if step.observations_images:
                step.observations_images = None
                changed = True
            if step.observations:
                shortened = truncate_content(step.observations, COMPACTED_OBSERVATION_LENGTH)
                if shortened != step.observations:
                    step.observations = shortened
                    changed = True
            if changed:
                pruned += 1
            if estimate_token_count(self.to_messages()) <= max_token_count:
                break
        return pruned

    def replay(self, logger: AgentLogger, detailed: bool = False) -> None:
        """Print the run to the terminal. `detailed` adds system prompt and model inputs."""
        logger.log_rule("Replaying the agent's steps", level=LogLevel.ERROR)
        if detailed:
            logger.log_markdown(self.system_prompt.system_prompt, title="System prompt", level=LogLevel.ERROR)
        for step in self.steps:
            if isinstance(step, TaskStep):
                logger.log_task(step.task, title="Task", level=LogLevel.ERROR)
            elif isinstance(step, ActionStep):
                logger.log_rule(f"Step {step.step_number}", level=LogLevel.ERROR)
                if detailed:
                    logger.log_messages(step.model_input_messages, level=LogLevel.ERROR)
                if step.model_output:
                    logger.log_markdown(step.model_output, title="Agent output:", level=LogLevel.ERROR)
                if step.observations:
                    logger.log_code("Observations", step.observations, level=LogLevel.ERROR)
                if step.error is not None:
                    logger.log_error(step.error.message)
            elif isinstance(step, PlanningStep):
                logger.log_plan("Planning step", step.plan, level=LogLevel.ERROR)
