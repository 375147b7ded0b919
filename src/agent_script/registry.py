# registry.py
# Tool registry and invoker.
#
# Every callable the model may use from a script is a BaseTool registered
# here, plain tools and managed sub-agents alike. Tools are looked up by
# name for invocation and by ToolKind when the engine needs a specific role
# (final answer, terminate, datasheet). Construction enforces the registry
# invariants once; invoke() is stateless so concurrent calls from one script
# are safe.

import functools
import inspect
import json
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from agent_script.errors import AgentError, AgentErrorCode

if TYPE_CHECKING:
    from agent_script.agent import CodeAgent


class ToolKind(str, Enum):
    GENERIC = "generic"
    FINAL_ANSWER = "final_answer"
    TERMINATE = "terminate"
    DATASHEET_WRITE = "datasheet_write"
    MANAGED_AGENT = "managed_agent"


ENDING_KINDS = frozenset({ToolKind.FINAL_ANSWER, ToolKind.TERMINATE})

_PRIMITIVE_TYPES = frozenset({"string", "number", "integer", "boolean", "null"})


def _to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, default=str, ensure_ascii=False)


class BaseTool:
    """
    A named, schema-typed callable exposed to sandboxed scripts.

    Subclasses set the class attributes and implement call(). `input_schema`
    and `output_schema` are anything pydantic.TypeAdapter accepts; a
    BaseModel subclass is the usual choice for inputs. call() and the hooks
    may be sync or async.
    """

    name: str = ""
    description: str = ""
    input_schema: Any = dict[str, Any]
    output_schema: Any = None
    kind: ToolKind = ToolKind.GENERIC

    @functools.cached_property
    def _input_adapter(self) -> TypeAdapter:
        return TypeAdapter(self.input_schema)

    def _single_field(self) -> str | None:
        schema = self.input_schema
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            return None
        required = [name for name, field in schema.model_fields.items() if field.is_required()]
        return required[0] if len(required) == 1 else None

    def validate_input(self, value: Any) -> Any:
        """
        Validate raw script input. Raises pydantic.ValidationError.

        A bare value is accepted for models with exactly one required field
        and is bound to that field.
        """
        field = self._single_field()
        if field is not None and not isinstance(value, (dict, BaseModel)):
            value = {field: value}
        return self._input_adapter.validate_python(value)

    def input_json_schema(self) -> dict:
        return self._input_adapter.json_schema()

    def output_description(self) -> str:
        if self.output_schema is None:
            return "unknown"
        return json.dumps(TypeAdapter(self.output_schema).json_schema())

    def signature(self) -> str:
        return (
            f"async def {self.name}(input: {json.dumps(self.input_json_schema())}) "
            f"-> {self.output_description()}"
        )

    def call(self, input: Any, agent: "CodeAgent") -> Any:
        raise NotImplementedError

    def on_before_call(self, input: Any, agent: "CodeAgent") -> Any:
        return None

    def on_after_call(self, input: Any, output: Any, agent: "CodeAgent") -> Any:
        return None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ManagedAgentInput(BaseModel):
    task: str = Field(..., description="The task for the team member, with as much detail as possible.")
    additional_args: dict[str, Any] | None = Field(
        default=None, description="Extra values made available to the team member."
    )


class ManagedAgentTool(BaseTool):
    """Exposes another agent to scripts as a tool named after it."""

    input_schema = ManagedAgentInput
    output_schema = str
    kind = ToolKind.MANAGED_AGENT

    def __init__(self, agent: Any) -> None:
        self.agent = agent
        self.name = agent.name
        self.description = agent.description

    async def call(self, input: ManagedAgentInput, agent: "CodeAgent") -> str:
        return await self.agent.call(input.task, input.additional_args or {})


class ToolRegistry:
    """Holds the tools and managed agents of one CodeAgent."""

    def __init__(self, tools: list[BaseTool], managed_agents: list[Any] | None = None) -> None:
        entries = list(tools) + [ManagedAgentTool(a) for a in managed_agents or []]

        seen: set[str] = set()
        duplicates: list[str] = []
        for tool in entries:
            if tool.name in seen:
                duplicates.append(tool.name)
            seen.add(tool.name)
        if duplicates:
            raise AgentError(
                f"Tool names must be unique. Duplicated: {', '.join(sorted(set(duplicates)))}",
                AgentErrorCode.VALIDATION_ERROR,
            )

        if not any(tool.kind in ENDING_KINDS for tool in entries):
            raise AgentError(
                "A CodeAgent requires a final answer or a terminate tool to be registered.",
                AgentErrorCode.VALIDATION_ERROR,
            )

        self._tools: dict[str, BaseTool] = {tool.name: tool for tool in entries}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[BaseTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def tools(self) -> list[BaseTool]:
        return [t for t in self._tools.values() if t.kind is not ToolKind.MANAGED_AGENT]

    @property
    def managed_agents(self) -> list[ManagedAgentTool]:
        return [t for t in self._tools.values() if isinstance(t, ManagedAgentTool)]

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def find_by_kind(self, kind: ToolKind) -> list[BaseTool]:
        return [t for t in self._tools.values() if t.kind is kind]

    def validate(self) -> list[str]:
        """Warnings for primitive input properties that carry no description."""
        warnings: list[str] = []
        for tool in self._tools.values():
            properties = tool.input_json_schema().get("properties", {})
            for prop, schema in properties.items():
                if schema.get("type") in _PRIMITIVE_TYPES and not schema.get("description"):
                    warnings.append(
                        f"Tool {tool.name} has an input property '{prop}' of primitive type "
                        "without a description."
                    )
        return warnings

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, name: str, input: Any, agent: "CodeAgent") -> Any:
        tool = self._tools.get(name)
        if tool is None:
            raise AgentError(f"Tool {name} not found", AgentErrorCode.TOOL_NOT_FOUND)

        try:
            validated = tool.validate_input(input)
        except ValidationError as exc:
            raise AgentError(
                f"Invalid input for tool {name}: {exc}", AgentErrorCode.INVALID_INPUT
            ) from exc

        if tool.kind is ToolKind.MANAGED_AGENT:
            try:
                return await tool.call(validated, agent)
            except Exception as exc:
                raise AgentError(
                    f"Error in calling team member: {exc}\n"
                    "You should only ask this team member with a correct request.\n"
                    f"As a reminder, this team member's description is the following:\n{tool.description}",
                    AgentErrorCode.MANAGED_AGENT_ERROR,
                ) from exc

        try:
            await _maybe_await(tool.on_before_call(validated, agent))
            output = await _maybe_await(tool.call(validated, agent))
            await _maybe_await(tool.on_after_call(validated, output, agent))
            return output
        except Exception as exc:
            raise AgentError(
                f"Error when calling tool {name} with arguments {_to_json(input)}: "
                f"{type(exc).__name__}: {exc}\n"
                "You should only call this tool with a correct input.\n"
                f"As a reminder, this tool's description is the following: '{tool.description}'.\n"
                f"It takes inputs: {json.dumps(tool.input_json_schema())} "
                f"and returns output type {tool.output_description()}",
                AgentErrorCode.TOOL_EXECUTION_ERROR,
            ) from exc
