# tools.py
# Built-in tools. Register the ones an agent needs; at least one of
# FinalAnswerTool / TerminateTool is required by the registry.

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from agent_script.registry import BaseTool, ToolKind

if TYPE_CHECKING:
    from agent_script.agent import CodeAgent


class FinalAnswerInput(BaseModel):
    answer: Any = Field(..., description="The final answer to the task.")


class FinalAnswerTool(BaseTool):
    name = "final_answer"
    description = "Provide the final answer to the user. Calling it ends the run."
    input_schema = FinalAnswerInput
    output_schema = Any
    kind = ToolKind.FINAL_ANSWER

    def __init__(self) -> None:
        self.output: Any = None

    async def call(self, input: FinalAnswerInput, agent: "CodeAgent") -> Any:
        self.output = input.answer
        return self.output


class TerminateInput(BaseModel):
    reason: str = Field(..., description="The reason for terminating the task.")


class TerminateTool(BaseTool):
    name = "terminate"
    description = "Terminate the agent. Must be the only tool call in its script."
    input_schema = TerminateInput
    output_schema = str
    kind = ToolKind.TERMINATE

    def __init__(self) -> None:
        self.reason: str | None = None

    def call(self, input: TerminateInput, agent: "CodeAgent") -> str:
        self.reason = input.reason
        return self.reason


class DatasheetWriteResult(BaseModel):
    success_count: int
    error_count: int
    total_success_count: int


class DatasheetWriteTool(BaseTool):
    """
    Collects structured rows produced by the agent.

    When `row_model` is given, each row is validated against it and invalid
    rows are counted as errors instead of failing the whole call.
    """

    name = "datasheet_write"
    description = "Write data entries (a list of rows) to the datasheet."
    input_schema = list[dict[str, Any]]
    output_schema = DatasheetWriteResult
    kind = ToolKind.DATASHEET_WRITE

    def __init__(self, row_model: type[BaseModel] | None = None) -> None:
        self.row_model = row_model
        self.entries: list[dict[str, Any]] = []
        if row_model is not None:
            self.description = (
                f"{self.description} Each row has the shape {row_model.model_json_schema()['properties']}."
            )

    async def call(self, input: list[dict[str, Any]], agent: "CodeAgent") -> DatasheetWriteResult:
        accepted: list[dict[str, Any]] = []
        errors = 0
        for row in input:
            if self.row_model is None:
                accepted.append(row)
                continue
            try:
                accepted.append(self.row_model.model_validate(row).model_dump())
            except ValueError:
                errors += 1

        self.entries.extend(accepted)
        return DatasheetWriteResult(
            success_count=len(accepted),
            error_count=errors,
            total_success_count=len(self.entries),
        )
