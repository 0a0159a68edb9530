"""Dialogue transcript rendering."""

from __future__ import annotations

from collections.abc import Sequence

from rag_chat.types import Turn

_ROLE_LABELS = {"user": "Human", "assistant": "Assistant"}


def format_history(turns: Sequence[Turn]) -> str:
    """Render turns as `<Label>: <content>` lines; unknown roles keep their name."""
    return "\n".join(
        f"{_ROLE_LABELS.get(turn.role, turn.role)}: {turn.content}" for turn in turns
    )
