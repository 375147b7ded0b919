# run.py
# Entry point. Config and wiring only; no logic lives here.
#
# Swap the model string for any OpenRouter-supported model.
# https://openrouter.ai/models

import asyncio
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from agent_script.agent import CodeAgent
from agent_script.chat_model import OpenAIChatModel
from agent_script.config import AgentConfig, ModelSettings
from agent_script.registry import BaseTool
from agent_script.tools import DatasheetWriteTool, FinalAnswerTool

MODEL = "anthropic/claude-3.5-haiku"

PROMPTS = [
    # Pure computation, one or two steps
    "What is the result of 5 + 3 + 1294.678, raised to the power 0.36?",

    # Delegates date arithmetic to the team member, then records rows
    "Ask the calendar assistant how many days are left until the end of the current year, "
    "then write one datasheet row per remaining month with its name and number of days.",
]


class CurrentTimeInput(BaseModel):
    timezone_name: str = Field(default="UTC", description="Only UTC is supported.")


class CurrentTimeTool(BaseTool):
    name = "current_time"
    description = "Return the current date and time in ISO 8601 format."
    input_schema = CurrentTimeInput
    output_schema = str

    def call(self, input: CurrentTimeInput, agent) -> str:
        return datetime.now(timezone.utc).isoformat()


class MonthRow(BaseModel):
    month: str
    days: int


async def _run_all() -> None:
    model = OpenAIChatModel(ModelSettings.from_env().model_copy(update={"model": MODEL}))

    calendar = CodeAgent(
        tools=[CurrentTimeTool(), FinalAnswerTool()],
        model=model,
        name="calendar_assistant",
        description="Answers questions about dates and times. Give it a precise question.",
        max_steps=5,
    )
    agent = CodeAgent.from_config(
        [FinalAnswerTool(), DatasheetWriteTool(row_model=MonthRow)],
        AgentConfig.from_env(planning_interval=3),
        model=model,
        managed_agents=[calendar],
    )

    for prompt in PROMPTS:
        result = await agent.run(prompt)
        print(f"\n[RESULT]\n{result}\n")


def main() -> None:
    asyncio.run(_run_all())


if __name__ == "__main__":
    main()
