"""Flatten OpenAI Chat and Responses inputs into plain role/content messages."""

from typing import Any

from llm_openai_bridge.errors import NoInputProvided
from llm_openai_bridge.upstream.base import Message, Role

ROLE_ALIASES: dict[str, Role] = {
    "system": "system",
    "user": "user",
    "assistant": "assistant",
    "developer": "system",
    "tool": "system",
}


def normalize_role(role: Any) -> Role:
    """Map an arbitrary role value onto system/user/assistant."""
    if not isinstance(role, str):
        return "user"
    return ROLE_ALIASES.get(role.strip().lower(), "user")


def extract_text(content: Any) -> str:
    """Recursively collapse a content value to a single string.

    Strings pass through, scalars are stringified, lists are flattened and
    joined with newlines (empty parts skipped), and objects are searched for a
    text-bearing field. Anything else yields an empty string.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, bool):
        return "true" if content else "false"
    if isinstance(content, (int, float)):
        return str(content)
    if isinstance(content, list):
        parts = [extract_text(part) for part in content]
        return "\n".join(part for part in parts if part)
    if isinstance(content, dict):
        return _extract_from_part(content)
    return ""


def _extract_from_part(part: dict[str, Any]) -> str:
    if isinstance(part.get("text"), str):
        return part["text"]

    part_type = part.get("type")
    if part_type == "text" and isinstance(part.get("value"), str):
        return part["value"]
    if part_type == "input_text":
        for field in ("input_text", "content"):
            if isinstance(part.get(field), str):
                return part[field]
    if part_type == "output_text" and isinstance(part.get("output_text"), str):
        return part["output_text"]

    if isinstance(part.get("content"), list):
        return extract_text(part["content"])
    return ""


def parse_messages(items: list[Any]) -> list[Message]:
    """Parse message-like objects, skipping non-objects and empty content."""
    parsed = []
    for item in items:
        if not isinstance(item, dict):
            continue
        content = extract_text(item.get("content"))
        if not content:
            continue
        parsed.append(Message(role=normalize_role(item.get("role")), content=content))
    return parsed


def parse_input(value: Any) -> list[Message]:
    """Parse a Responses ``input`` (string, single object or array)."""
    if isinstance(value, str):
        return [Message(role="user", content=value)] if value else []
    if isinstance(value, list):
        return parse_messages(value)
    if isinstance(value, dict):
        return parse_messages([value])
    return []


def normalize(
    input_value: Any = None,
    instructions: Any = None,
    fallback_messages: Any = None,
) -> list[Message]:
    """Build the ordered message list for one request.

    Order is: instructions as a system message, then ``input``, then the
    Chat-style ``messages`` array.

    Raises:
        NoInputProvided: nothing survived flattening
    """
    messages: list[Message] = []

    instruction_text = extract_text(instructions)
    if instruction_text:
        messages.append(Message(role="system", content=instruction_text))

    if input_value is not None:
        messages.extend(parse_input(input_value))

    if isinstance(fallback_messages, list):
        messages.extend(parse_messages(fallback_messages))

    if not messages:
        raise NoInputProvided()
    return messages
