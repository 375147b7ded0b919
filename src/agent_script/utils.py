# utils.py
# Small text and message helpers shared by the engine.

import math

from agent_script.models import ChatMessage

MAX_LENGTH_TRUNCATE_CONTENT = 10_000


def truncate_content(content: str, max_length: int = MAX_LENGTH_TRUNCATE_CONTENT) -> str:
    """
    Keep the head and tail of `content` when it exceeds `max_length`.

    The first and last max_length // 2 characters are kept unchanged, joined
    by a marker stating the limit.
    """
    if len(content) <= max_length:
        return content

    half = max_length // 2
    marker = f"\n..._This content has been truncated to stay below {max_length} characters_...\n"
    return content[:half] + marker + content[len(content) - half:]


def remove_leading_indentation(content: str, exclude_first_non_empty_line: bool = True) -> str:
    """Strip the common indentation of a triple-quoted prompt block."""
    lines = content.split("\n")
    non_empty = [line for line in lines if line.strip()]
    considered = non_empty[1:] if exclude_first_non_empty_line else non_empty
    if not considered:
        return content

    indent = min(len(line) - len(line.lstrip(" ")) for line in considered)
    prefix = " " * indent
    return "\n".join(line[indent:] if line.startswith(prefix) else line for line in lines)


def estimate_token_count(messages: list[ChatMessage]) -> int:
    """Rough token estimate: four characters per token."""
    chars = sum(len(m.content) for m in messages)
    return math.ceil(chars / 4)


def to_openai_messages(messages: list[ChatMessage]) -> list[dict]:
    """Convert engine messages to the chat.completions wire format."""
    converted: list[dict] = []
    for message in messages:
        if message.role == "user" and message.images:
            parts: list[dict] = [{"type": "text", "text": message.content}]
            parts.extend({"type": "image_url", "image_url": {"url": url}} for url in message.images)
            converted.append({"role": "user", "content": parts})
        else:
            converted.append({"role": message.role, "content": message.content})
    return converted
