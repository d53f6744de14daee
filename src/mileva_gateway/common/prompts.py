"""Prompt helpers: chat transcript flattening and the usage heuristic."""
from __future__ import annotations
import math
import re

ROLE_TAGS = {"system": "system", "user": "Human", "assistant": "Assistant"}
_TAG_ROLES = {tag: role for role, tag in ROLE_TAGS.items()}
ASSISTANT_CUE = "Assistant:"
SEPARATOR = "\n\n"

_ENTRY_RE = re.compile(r"(?:^|\n\n)(system|Human|Assistant): ")


def flatten_messages(messages: list[tuple[str, str]]) -> str:
    """
    Flatten ``(role, content)`` pairs into a role-tagged transcript.

    The transcript ends with an open ``Assistant:`` cue so the model continues
    as the assistant.

    Args:
        messages: Ordered chat messages.

    Returns:
        Prompt text.
    """
    entries = [f"{ROLE_TAGS[role]}: {content}" for role, content in messages]
    entries.append(ASSISTANT_CUE)
    return SEPARATOR.join(entries)


def parse_transcript(text: str) -> list[tuple[str, str]]:
    """Inverse of :func:`flatten_messages`; the trailing cue is dropped."""
    if text.endswith(ASSISTANT_CUE):
        text = text[: -len(ASSISTANT_CUE)]
        if text.endswith(SEPARATOR):
            text = text[: -len(SEPARATOR)]
    matches = list(_ENTRY_RE.finditer(text))
    messages = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        messages.append((_TAG_ROLES[match.group(1)], text[match.end():end]))
    return messages


def approx_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)
