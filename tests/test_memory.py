import io

from rich.console import Console

from agent_script.display import AgentLogger, LogLevel
from agent_script.errors import AgentError, AgentErrorCode
from agent_script.memory import ActionStep, AgentMemory, PlanningStep, SystemPromptStep, TaskStep
from agent_script.models import ChatMessage
from agent_script.utils import estimate_token_count, remove_leading_indentation, truncate_content


def build_memory():
    memory = AgentMemory("You are a test agent.")
    memory.steps.append(TaskStep(task="Count to three.", task_images=["data:image/png;base64,AAAA"]))
    memory.steps.append(PlanningStep(facts="facts here", plan="plan here"))
    memory.steps.append(
        ActionStep(
            step_number=1,
            model_input_messages=[ChatMessage(role="user", content="input")],
            model_output="Thought: count\nCode:\n```python\nprint(1)\n```",
            observations="-- Tool call results --\n1",
        )
    )
    memory.steps.append(
        ActionStep(
            step_number=2,
            model_output="Thought: oops",
            error=AgentError("Script execution failed: NameError: x", AgentErrorCode.SCRIPT_EXECUTION_FAILED),
        )
    )
    return memory


# ---------------------------------------------------------------------------
# Rendering Tests
# ---------------------------------------------------------------------------

def test_system_prompt_step_is_dropped_in_summary_mode():
    step = SystemPromptStep(system_prompt="sys")
    assert step.to_messages() == [ChatMessage(role="system", content="sys")]
    assert step.to_messages(summary_mode=True) == []

def test_task_step_carries_images():
    [message] = TaskStep(task="Describe it.", task_images=["img"]).to_messages()
    assert message.role == "user"
    assert message.content == "New task:\nDescribe it."
    assert message.images == ["img"]

def test_planning_step_hides_plan_in_summary_mode():
    step = PlanningStep(facts="f", plan="p")
    assert [m.content for m in step.to_messages()] == ["[FACTS LIST]:\nf", "[PLAN]:\np"]
    assert [m.content for m in step.to_messages(summary_mode=True)] == ["[FACTS LIST]:\nf"]

def test_action_step_renders_output_and_observation():
    step = ActionStep(step_number=1, model_output="Thought: x", observations="obs")
    messages = step.to_messages()
    assert [(m.role, m.content) for m in messages] == [
        ("assistant", "Thought: x"),
        ("user", "Observation:\nobs"),
    ]

def test_action_step_error_message_has_retry_hint():
    step = ActionStep(step_number=1, error=AgentError("bad", AgentErrorCode.TOOL_EXECUTION_ERROR))
    [message] = step.to_messages()
    assert message.role == "user"
    assert message.content.startswith("Error:\nbad\nNow let's retry")

def test_action_step_summary_mode_drops_model_output():
    step = ActionStep(step_number=1, model_output="Thought: x", observations="obs")
    assert [m.role for m in step.to_messages(summary_mode=True)] == ["user"]

def test_action_step_can_show_model_inputs():
    step = ActionStep(step_number=1, model_input_messages=[ChatMessage(role="user", content="hello")])
    assert step.to_messages() == []
    [message] = step.to_messages(show_model_input_messages=True)
    assert message.role == "system"
    assert '"hello"' in message.content

def test_memory_rendering_is_idempotent():
    memory = build_memory()
    first = memory.to_messages()
    assert memory.to_messages() == first
    assert [m.role for m in first] == ["system", "user", "assistant", "assistant", "assistant", "user", "assistant", "user"]

def test_succinct_steps_omit_model_inputs():
    memory = build_memory()
    succinct = memory.get_succinct_steps()
    full = memory.get_full_steps()

    assert "model_input_messages" not in succinct[2]
    assert full[2]["model_input_messages"] == [{"role": "user", "content": "input", "images": None}]
    assert succinct[3]["error"] == {
        "code": "SCRIPT_EXECUTION_FAILED",
        "message": "Script execution failed: NameError: x",
    }
    assert [s["type"] for s in succinct] == ["TaskStep", "PlanningStep", "ActionStep", "ActionStep"]

def test_reset_keeps_system_prompt():
    memory = build_memory()
    memory.reset()
    assert memory.steps == []
    assert memory.to_messages() == [ChatMessage(role="system", content="You are a test agent.")]

def test_replay_writes_every_step():
    buffer = io.StringIO()
    logger = AgentLogger(level=LogLevel.INFO, console=Console(file=buffer, width=120))
    build_memory().replay(logger, detailed=True)
    text = buffer.getvalue()
    assert "Count to three." in text
    assert "Step 1" in text
    assert "NameError" in text


# ---------------------------------------------------------------------------
# Compaction Tests
# ---------------------------------------------------------------------------

def test_compact_is_a_no_op_under_budget():
    memory = build_memory()
    before = memory.to_messages()
    assert memory.compact(max_token_count=100_000) == 0
    assert memory.to_messages() == before

def test_compact_prunes_older_steps_first_and_keeps_the_newest():
    memory = AgentMemory("sys")
    memory.steps.append(TaskStep(task="t"))
    for number in (1, 2, 3):
        memory.steps.append(
            ActionStep(
                step_number=number,
                observations="x" * 20_000,
                observations_images=["img"],
            )
        )

    pruned = memory.compact(max_token_count=2_000)

    first, second, newest = memory.action_steps()
    assert pruned == 2
    assert first.observations_images is None and len(first.observations) < 1_200
    assert second.observations_images is None and len(second.observations) < 1_200
    assert newest.observations == "x" * 20_000
    assert newest.observations_images == ["img"]
    assert memory.steps[0].task == "t"

def test_compact_stops_once_within_budget():
    memory = AgentMemory("sys")
    for number in (1, 2, 3):
        memory.steps.append(ActionStep(step_number=number, observations="y" * 8_000))

    assert memory.compact(max_token_count=5_000) == 1
    assert memory.action_steps()[1].observations == "y" * 8_000


# ---------------------------------------------------------------------------
# Text Helper Tests
# ---------------------------------------------------------------------------

def test_truncate_content_keeps_short_text():
    assert truncate_content("short", max_length=10) == "short"
    assert truncate_content("x" * 10, max_length=10) == "x" * 10

def test_truncate_content_keeps_head_and_tail():
    content = "a" * 50 + "b" * 50
    truncated = truncate_content(content, max_length=20)
    assert truncated.startswith("a" * 10)
    assert truncated.endswith("b" * 10)
    assert "truncated to stay below 20 characters" in truncated

def test_truncate_content_with_tiny_or_odd_limits():
    marker = "\n..._This content has been truncated to stay below 1 characters_...\n"
    assert truncate_content("abcdefghij", max_length=1) == marker

    truncated = truncate_content("abcdefghij", max_length=5)
    assert truncated.startswith("ab\n")
    assert truncated.endswith("\nij")
    assert len(truncated) <= 5 + len(marker)

def test_estimate_token_count_rounds_up():
    assert estimate_token_count([ChatMessage(role="user", content="abcde")]) == 2
    assert estimate_token_count([]) == 0

def test_remove_leading_indentation():
    content = "First line\n    indented\n      deeper"
    assert remove_leading_indentation(content) == "First line\nindented\n  deeper"
