# errors.py
# Error taxonomy for the agent engine.
#
# AgentError is the recoverable kind: the step loop attaches it to the
# current ActionStep and replays its message to the model. Anything that is
# not an AgentError aborts the run.

from enum import Enum


class AgentErrorCode(str, Enum):
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    SCRIPT_EXECUTION_FAILED = "SCRIPT_EXECUTION_FAILED"
    MODEL_OUTPUT_ERROR = "MODEL_OUTPUT_ERROR"
    INVALID_CODE_PATTERN = "INVALID_CODE_PATTERN"
    MAX_STEPS_REACHED = "MAX_STEPS_REACHED"
    PREMATURE_TERMINATE = "PREMATURE_TERMINATE"
    MANAGED_AGENT_ERROR = "MANAGED_AGENT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Older names for the same conditions.
    UDF_NOT_FOUND = "TOOL_NOT_FOUND"
    UDF_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"


class AgentError(Exception):
    """Recoverable engine error. Carries a message and an AgentErrorCode."""

    def __init__(self, message: str, code: AgentErrorCode) -> None:
        super().__init__(message)
        self.message = message
        self.code = AgentErrorCode(code)

    def __repr__(self) -> str:
        return f"AgentError(code={self.code.value!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class ChatCompletionError(Exception):
    """Raised by a chat model when the provider returns no message."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error
