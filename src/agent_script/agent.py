# agent.py
# CodeAgent: the step loop.
#
# The agent owns all control flow. The model only ever answers a message
# list; everything it asks for happens through the script it writes, run in
# the agent's Sandbox against the agent's ToolRegistry.
#
# Control flow:
#   run() → reset → [planning] → step → observation → memory
#   → ... → final answer | max steps | circuit breaker
#
# All terminal output goes through AgentLogger; no formatting here.

import re
import time
from typing import Any

from agent_script.chat_model import ChatModel, OpenAIChatModel
from agent_script.config import DEFAULT_AUTHORIZED_IMPORTS, AgentConfig
from agent_script.display import AgentLogger, LogLevel
from agent_script.errors import AgentError, AgentErrorCode
from agent_script.memory import ActionStep, AgentMemory, SystemPromptStep, TaskStep
from agent_script.models import ChatMessage
from agent_script.planner import Planner
from agent_script.prompts import PromptTemplates, render, render_managed_agents, render_tools
from agent_script.registry import BaseTool, ToolRegistry
from agent_script.sandbox import Sandbox
from agent_script.utils import truncate_content

CODE_BLOCK_PATTERN = re.compile(r"```(?:python|py)?\s*\n?(.*?)\n?```", re.DOTALL)

STEP_STOP_SEQUENCES = ["<end_code>", "Observation:"]

OBSERVATION_HEADER = "-- Tool call results --\n"

CIRCUIT_BREAKER_WINDOW = 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_code_output(content: str, strict: bool = False) -> str:
    """
    Extract the first fenced Python block from a model response.

    Without a fenced block the whole response is treated as code, unless
    `strict` is set, in which case INVALID_CODE_PATTERN is raised with an
    example of the expected format.
    """
    match = CODE_BLOCK_PATTERN.search(content)
    if match:
        return match.group(1)
    if not strict:
        return content

    raise AgentError(
        f"Your code snippet is invalid, because the regex pattern {CODE_BLOCK_PATTERN.pattern} "
        "was not found in it.\n"
        f"Here is your code snippet:\n{content}\n"
        "Make sure to include code with the correct pattern, for instance:\n"
        "Thoughts: Your thoughts\n"
        "Code:\n"
        "```python\n"
        "# Your python code here\n"
        "```<end_code>",
        AgentErrorCode.INVALID_CODE_PATTERN,
    )


# ---------------------------------------------------------------------------
# CodeAgent
# ---------------------------------------------------------------------------


class CodeAgent:
    """
    Solves a task by letting the model write Python that calls tools.

    Example:
        agent = CodeAgent(tools=[FinalAnswerTool()], max_steps=5)
        answer = await agent.run("What is 2 ** 10?")

    A CodeAgent can also be handed to another agent's `managed_agents`; it
    is then callable from that agent's scripts under its `name`.
    """

    output_schema = str

    def __init__(
        self,
        tools: list[BaseTool],
        model: ChatModel | None = None,
        name: str = "code_agent",
        description: str = "An agent that solves tasks by writing and running Python code.",
        max_steps: int = 10,
        planning_interval: int | None = None,
        initial_planning: bool | None = None,
        managed_agents: list[Any] | None = None,
        prompts: PromptTemplates | None = None,
        logger: AgentLogger | None = None,
        authorized_imports: list[str] | None = None,
        script_timeout: float | None = None,
        strict_code_pattern: bool = False,
        max_memory_token_count: int = 128_000,
        provide_run_summary: bool = False,
        verbosity: LogLevel = LogLevel.INFO,
    ) -> None:
        self.model = model or OpenAIChatModel()
        self.name = name
        self.description = description
        self.max_steps = max_steps
        self.planning_interval = planning_interval
        if initial_planning is None:
            initial_planning = planning_interval is not None
        self.initial_planning = initial_planning
        self.prompts = prompts or PromptTemplates()
        self.logger = logger or AgentLogger(level=verbosity)
        self.authorized_imports = list(
            DEFAULT_AUTHORIZED_IMPORTS if authorized_imports is None else authorized_imports
        )
        self.strict_code_pattern = strict_code_pattern
        self.max_memory_token_count = max_memory_token_count
        self.provide_run_summary = provide_run_summary

        self.registry = ToolRegistry(tools, managed_agents)
        for warning in self.registry.validate():
            self.logger.log(f"Warning: {warning}", level=LogLevel.INFO)

        self.task = ""
        self.step_number = 0
        self.should_run_planning = False
        self.memory = AgentMemory(self.render_system_prompt())
        self.sandbox = Sandbox(self.registry, self, self.authorized_imports, script_timeout)
        self.planner = Planner(self)

    @classmethod
    def from_config(
        cls,
        tools: list[BaseTool],
        config: AgentConfig,
        model: ChatModel | None = None,
        managed_agents: list[Any] | None = None,
        prompts: PromptTemplates | None = None,
        logger: AgentLogger | None = None,
    ) -> "CodeAgent":
        return cls(
            tools,
            model=model,
            managed_agents=managed_agents,
            prompts=prompts,
            logger=logger,
            **config.model_dump(),
        )

    # ------------------------------------------------------------------
    # Memory rendering
    # ------------------------------------------------------------------

    def render_system_prompt(self) -> str:
        return render(
            self.prompts.system_prompt,
            task=self.task,
            tools=render_tools(self.registry),
            managed_agents=render_managed_agents(self.registry),
            description=self.description,
            authorized_imports=", ".join(self.authorized_imports),
        )

    def write_memory_to_messages(self, summary_mode: bool = False) -> list[ChatMessage]:
        """Past model outputs, observations, errors and plans as a message list."""
        return self.memory.to_messages(summary_mode=summary_mode)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(
        self,
        task: str,
        images: list[str] | None = None,
        additional_args: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run the agent on `task` until a final answer, max_steps or the
        circuit breaker. Returns the final answer, or None.

        `additional_args` are bound as variables in the script namespace.
        """
        final_answer = None
        self.task = task
        self.step_number = 1
        self.memory.reset()
        self.memory.system_prompt = SystemPromptStep(system_prompt=self.render_system_prompt())
        self.sandbox.reset()
        if additional_args:
            self.sandbox.namespace.update(additional_args)
        self.should_run_planning = self.initial_planning

        self.logger.log_task(
            task.strip(),
            subtitle=f"{type(self.model).__name__} - {self.model.model_id}",
            title=self.name,
        )
        self.memory.steps.append(TaskStep(task=task, task_images=images))

        while final_answer is None and self.step_number <= self.max_steps and not self.error_circuit_breaker():
            if self.should_run_planning:
                await self.planner.run()
                continue

            action_step = ActionStep(step_number=self.step_number)
            self.memory.steps.append(action_step)
            self.logger.log_rule(f"Step {self.step_number}")

            try:
                await self.before_step(action_step)
                final_answer = await self.step(action_step)
                await self.after_step(action_step)
            except AgentError as exc:
                action_step.error = exc
                self.logger.log_error(exc.message)
            finally:
                action_step.end_time = time.time()
                action_step.duration = action_step.end_time - action_step.start_time
                self.step_number += 1

        if final_answer is None and self.step_number > self.max_steps:
            error = AgentError("Reached max steps.", AgentErrorCode.MAX_STEPS_REACHED)
            final_step = ActionStep(step_number=self.max_steps + 1, error=error)
            final_step.end_time = time.time()
            self.memory.steps.append(final_step)
            self.logger.log_error(error.message)

        return final_answer

    def error_circuit_breaker(self) -> bool:
        """True when the last three action steps failed with the same message."""
        recent = self.memory.action_steps()[-CIRCUIT_BREAKER_WINDOW:]
        if len(recent) < CIRCUIT_BREAKER_WINDOW or any(step.error is None for step in recent):
            return False
        latest = recent[-1].error.message
        return all(step.error.message == latest for step in recent)

    def update_should_run_planning(self) -> None:
        """Plan before the next step when the current one is 1 mod planning_interval."""
        interval = self.planning_interval
        if interval is None:
            return
        # k % 1 is never 1; an interval of 1 plans after every step.
        if interval == 1 or self.step_number % interval == 1:
            self.should_run_planning = True

    async def before_step(self, action_step: ActionStep) -> None:
        """Hook run before each action step."""

    async def after_step(self, action_step: ActionStep) -> None:
        """
        Hook run after a step that raised no AgentError, before step_number
        advances. An AgentError raised here is attached to the step.
        """
        self.update_should_run_planning()

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    async def step(self, action_step: ActionStep) -> Any:
        """
        One think / act / observe cycle.

        Returns the final answer when the script produced one, else None.
        Raises AgentError for anything the model can recover from.
        """
        self.memory.compact(self.max_memory_token_count)
        messages = self.write_memory_to_messages()
        action_step.model_input_messages = list(messages)
        self.logger.log_messages(messages)

        try:
            response = await self.model.chat_completion(messages, stop=STEP_STOP_SEQUENCES)
        except Exception as exc:
            raise AgentError(
                f"Error generating model output:\n{type(exc).__name__}: {exc}",
                AgentErrorCode.MODEL_OUTPUT_ERROR,
            ) from exc

        action_step.model_output_message = response.message
        action_step.model_output = response.message.content
        action_step.token_usage = response.usage
        self.logger.log_markdown(action_step.model_output, title="Output message of the LLM:")

        code = parse_code_output(action_step.model_output, strict=self.strict_code_pattern)
        action_step.code = code
        self.logger.log_code("Executing code", code)

        outcome = await self.sandbox.execute_script(code)
        action_step.action_output = outcome.result
        if outcome.output:
            action_step.observations = OBSERVATION_HEADER + truncate_content(outcome.output)
        else:
            action_step.observations = OBSERVATION_HEADER + "No output from tool calls"
        self.logger.log_code("Observations", action_step.observations)

        if outcome.is_final_answer:
            self.logger.log_markdown(str(outcome.result), title="Final answer")
            return outcome.result
        return None

    # ------------------------------------------------------------------
    # Managed agent surface and utilities
    # ------------------------------------------------------------------

    async def call(self, task: str, additional_args: dict[str, Any] | None = None) -> str:
        """Run as a team member of another agent and return a report for it."""
        full_task = render(self.prompts.managed_agent_task, name=self.name, task=task)
        if additional_args:
            full_task += (
                "\nYou have been provided with these additional arguments, that you can access "
                f"using the keys as variables in your Python code:\n{additional_args}"
            )

        report = await self.run(full_task, additional_args=additional_args)

        answer = render(self.prompts.managed_agent_report, name=self.name, final_answer=str(report))
        if self.provide_run_summary:
            answer += "\n\nFor more detail, find below a summary of this agent's work:\n<summary_of_work>\n"
            for message in self.write_memory_to_messages(summary_mode=True):
                answer += f"\n{truncate_content(message.content)}\n---"
            answer += "\n</summary_of_work>"
        return answer

    async def provide_final_answer(self, task: str, images: list[str] | None = None) -> str:
        """Ask the model for a best-effort answer from the memory of a failed run."""
        messages = [ChatMessage(role="system", content=self.prompts.final_answer_pre)]
        messages.extend(self.write_memory_to_messages()[1:])
        messages.append(
            ChatMessage(role="user", content=render(self.prompts.final_answer_post, task=task), images=images)
        )
        try:
            response = await self.model.chat_completion(messages)
        except Exception as exc:
            self.logger.log_error(f"Error in generating final LLM output: {exc}")
            return f"Error in generating final LLM output:\n{exc}"
        return response.message.content

    def replay(self, detailed: bool = False) -> None:
        self.memory.replay(self.logger, detailed=detailed)
