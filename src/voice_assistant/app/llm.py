"""
LLM integration module.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are Kate, a relaxed and confident voice companion. "
    "Your replies are spoken aloud, so keep them very short and conversational, "
    "with no Markdown, lists or emojis. Only talk in English. "
    "When the user says goodbye or indicates they want to end the conversation, "
    "first reply with a short friendly goodbye, then call the end_conversation "
    "function with should_exit set to true. Never mention the function call."
)

END_CONVERSATION_TOOL = {
    "type": "function",
    "function": {
        "name": "end_conversation",
        "description": "Detect if the user wants to end the conversation",
        "parameters": {
            "type": "object",
            "properties": {
                "should_exit": {
                    "type": "boolean",
                    "description": (
                        "Set to true if the user's message indicates they "
                        "want to end the conversation"
                    ),
                },
            },
            "required": ["should_exit"],
        },
    },
}


@dataclass(frozen=True)
class Reply:
    """Generated reply plus the model's end-of-conversation decision."""

    text: str
    should_end: bool = False


def parse_should_exit(arguments: str) -> bool:
    """Read should_exit from accumulated tool-call arguments."""
    if not arguments:
        return False
    try:
        payload = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning("Unparseable end_conversation arguments: %r", arguments)
        return False
    if not isinstance(payload, dict):
        return False
    return bool(payload.get("should_exit", False))


class ResponseGenerator:
    """
    Chat-completion reply generator that keeps the conversation history.

    Replies are streamed; text deltas can be observed through on_chunk.
    """

    def __init__(
        self,
        client: OpenAI,
        model: str = "gpt-4o-mini",
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        history_limit: int = 10,
        on_chunk: Callable[[str], None] | None = None,
    ):
        self.client = client
        self.model = model
        self.system_prompt = system_prompt
        self.history_limit = history_limit
        self.on_chunk = on_chunk
        self.history: list[dict[str, str]] = []

    def _remember(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})
        if self.history_limit > 0 and len(self.history) > self.history_limit:
            self.history = self.history[-self.history_limit :]

    def messages(self) -> list[dict[str, Any]]:
        return [{"role": "system", "content": self.system_prompt}, *self.history]

    def generate(self, text: str) -> Reply:
        """
        Generate a reply to the user's transcribed speech.

        Args:
            text: What the user said

        Returns:
            Reply with the assistant text and whether to end the conversation
        """
        self._remember("user", text)

        stream = self.client.chat.completions.create(
            model=self.model,
            messages=self.messages(),
            tools=[END_CONVERSATION_TOOL],
            stream=True,
        )

        parts: list[str] = []
        arguments = ""
        for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                parts.append(delta.content)
                if self.on_chunk:
                    self.on_chunk(delta.content)
            for call in delta.tool_calls or []:
                if call.function and call.function.arguments:
                    arguments += call.function.arguments

        reply = Reply(text="".join(parts), should_end=parse_should_exit(arguments))
        if arguments:
            logger.debug("Function call result: should_exit = %s", reply.should_end)
        logger.debug("Full LLM response: %s", reply.text)

        self._remember("assistant", reply.text)
        return reply
