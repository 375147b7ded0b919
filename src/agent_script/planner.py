# planner.py
# Facts survey and plan generation.
#
# Planning is two model calls: one for facts, one for the plan built on
# those facts. The first planning step of a run starts from the bare task;
# later ones see the run so far (without the system prompt) and the number
# of steps left.

from typing import TYPE_CHECKING

from agent_script.memory import PlanningStep
from agent_script.models import ChatMessage
from agent_script.prompts import render, render_managed_agents, render_tools

if TYPE_CHECKING:
    from agent_script.agent import CodeAgent

PLAN_STOP_SEQUENCES = ["<end_plan>"]


class Planner:
    """Produces PlanningSteps for one CodeAgent."""

    def __init__(self, agent: "CodeAgent") -> None:
        self.agent = agent

    async def run(self) -> PlanningStep:
        """
        Run one planning step and append it to memory.

        Model errors propagate unchanged; a failed plan aborts the run.
        """
        agent = self.agent
        if agent.step_number == 1:
            step = await self._initial_plan()
            title = "Initial plan"
        else:
            step = await self._updated_plan()
            title = "Updated plan"

        agent.memory.steps.append(step)
        agent.should_run_planning = False
        agent.logger.log_plan(title, step.plan)
        return step

    async def _initial_plan(self) -> PlanningStep:
        agent = self.agent
        prompts = agent.prompts

        input_messages = [
            ChatMessage(role="system", content=prompts.initial_facts),
            ChatMessage(role="user", content=f"Here is the task:\n```\n{agent.task}\n```\nNow begin!"),
        ]
        facts_response = await agent.model.chat_completion(input_messages)
        answer_facts = facts_response.message.content

        plan_prompt = render(
            prompts.initial_plan,
            task=agent.task,
            tools=render_tools(agent.registry),
            managed_agents=render_managed_agents(agent.registry),
            answer_facts=answer_facts,
        )
        plan_response = await agent.model.chat_completion(
            [ChatMessage(role="user", content=plan_prompt)], stop=PLAN_STOP_SEQUENCES
        )

        return PlanningStep(
            model_input_messages=input_messages,
            model_output_message_facts=facts_response.message,
            facts=f"Here are the facts that I know so far:\n```\n{answer_facts}\n```".strip(),
            model_output_message_plan=plan_response.message,
            plan=(
                "Here is the plan of action that I will follow to solve the task:\n"
                f"```\n{plan_response.message.content}\n```"
            ),
        )

    async def _updated_plan(self) -> PlanningStep:
        agent = self.agent
        prompts = agent.prompts

        memory_messages = agent.write_memory_to_messages()[1:]

        input_messages = [
            ChatMessage(role="system", content=prompts.update_facts_pre),
            *memory_messages,
            ChatMessage(role="user", content=prompts.update_facts_post),
        ]
        facts_response = await agent.model.chat_completion(input_messages)
        facts_update = facts_response.message.content

        plan_messages = [
            ChatMessage(role="system", content=render(prompts.update_plan_pre, task=agent.task)),
            *memory_messages,
            ChatMessage(
                role="user",
                content=render(
                    prompts.update_plan_post,
                    task=agent.task,
                    tools=render_tools(agent.registry),
                    managed_agents=render_managed_agents(agent.registry),
                    facts_update=facts_update,
                    remaining_steps=agent.max_steps - agent.step_number,
                ),
            ),
        ]
        plan_response = await agent.model.chat_completion(plan_messages, stop=PLAN_STOP_SEQUENCES)

        return PlanningStep(
            model_input_messages=input_messages,
            model_output_message_facts=facts_response.message,
            facts=f"Here is the updated list of the facts that I know:\n```\n{facts_update}\n```",
            model_output_message_plan=plan_response.message,
            plan=(
                f"I still need to solve the task I was given:\n```\n{agent.task}\n```\n\n"
                "Here is my new/updated plan of action to solve the task:\n"
                f"```\n{plan_response.message.content}\n```"
            ),
        )
