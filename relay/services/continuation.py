"""Continuation oracle: decides whether the model keeps speaking after a turn."""

import json
from collections.abc import Sequence
from typing import Protocol

from pydantic import ValidationError

from relay.clients.anthropic import AnthropicClient, AnthropicMessage
from relay.models.llm import LLMToolDefinition, NextSpeakerDecision, ToolUseBlock
from relay.models.messages import Message
from relay.utils.logging import get_logger

logger = get_logger(__name__)

DECISION_TOOL_NAME = "record_next_speaker"

CHECK_PROMPT = """Analyze *only* the content and structure of the assistant's immediately preceding \
response (the last model turn in the conversation below). Based *strictly* on that response, determine \
who should logically speak next: the 'user' or the 'model'.

**Decision Rules (apply in order):**
1. **Model Continues:** If the last response explicitly states an immediate next action the model \
intends to take (e.g. "Next, I will...", "Now I'll process...", an intended tool call that did not \
execute), or leaves a multi-step task incomplete or cut off mid-thought, the **'model'** speaks next.
2. **Question to User:** If the last response ends with a direct question addressed to the user, the \
**'user'** speaks next.
3. **Tool Chain:** If a server tool was just invoked and its result has not been acted on yet, the \
**'model'** speaks next.
4. **Waiting for User:** Otherwise the response completed a thought or task and expects a reaction, \
so the **'user'** speaks next.

Record your decision with the record_next_speaker tool."""

DECISION_TOOL = LLMToolDefinition(
    name=DECISION_TOOL_NAME,
    description="Record who should speak next in the conversation.",
    input_schema=NextSpeakerDecision.model_json_schema(),
)

USER_TURN = NextSpeakerDecision(reasoning="Defaulted to the user", next_speaker="user")


class ContinuationOracle(Protocol):
    """Decides who speaks after a completed model turn."""

    async def decide(self, messages: Sequence[Message]) -> NextSpeakerDecision:
        """Decide the next speaker from a trailing window of messages."""
        ...


def serialize_window(messages: Sequence[Message]) -> str:
    """Render messages as JSON for the oracle prompt."""
    return json.dumps(
        [{"role": message.role, "parts": [part.model_dump(mode="json") for part in message.parts]} for message in messages],
        indent=2,
    )


class AnthropicContinuationOracle:
    """Continuation oracle backed by a forced tool call on a fast model."""

    def __init__(self, client: AnthropicClient, window: int = 10):
        self.client = client
        self.window = window

    async def decide(self, messages: Sequence[Message]) -> NextSpeakerDecision:
        recent = list(messages)[-self.window :]
        prompt = f"<conversation>\n{serialize_window(recent)}\n</conversation>\n\n{CHECK_PROMPT}"

        try:
            response = await self.client.create_message(
                messages=[AnthropicMessage(role="user", content=prompt)],
                system_prompt="You judge conversation flow for an AI agent.",
                tools=[DECISION_TOOL],
                tool_choice={"type": "tool", "name": DECISION_TOOL_NAME},
                model=self.client.config.fast_model,
                max_tokens=512,
                temperature=0.0,
            )
        except Exception as e:
            logger.warning(f"Continuation check failed, handing the turn to the user: {e}", exc_info=True)
            return USER_TURN

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == DECISION_TOOL_NAME:
                try:
                    decision = NextSpeakerDecision.model_validate(block.input)
                except ValidationError as e:
                    logger.warning(f"Unparseable continuation decision {block.input}: {e}")
                    return USER_TURN

                logger.debug(f"Next speaker: {decision.next_speaker} ({decision.reasoning})")
                return decision

        logger.warning("Continuation check returned no decision, handing the turn to the user")
        return USER_TURN
