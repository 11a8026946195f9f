"""User-facing copy for notices, prompts and button labels."""

from __future__ import annotations


def _ensure_sentence(text: str) -> str:
    """Return text with terminal sentence punctuation."""
    cleaned = text.strip()
    if not cleaned:
        return ""
    if cleaned.endswith((".", "!", "?")):
        return cleaned
    return f"{cleaned}."


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def build_next_step_hint(next_step: str) -> str:
    """Build a canonical next-step guidance line."""
    return f"Next step: {_ensure_sentence(next_step)}"


def build_actionable_error(
    action: str,
    *,
    next_step: str,
    why: str | None = None,
) -> str:
    """Build a 2-3 line actionable error message."""
    lines = [f"Could not {action.strip()}."]
    if why:
        lines.append(f"Why: {_ensure_sentence(why)}")
    lines.append(build_next_step_hint(next_step))
    return "\n".join(lines)


def build_result_count_label(item_count: int) -> str:
    """Label shown under the result list ("3 items")."""
    return _plural(item_count, "item")


def build_added_notification(item_count: int) -> str:
    if item_count == 0:
        return "Nothing new to add"
    return f"Added {_plural(item_count, 'reference')}"


def build_remove_all_prompt(item_count: int) -> str:
    """Text shown while the remove-all gate is armed."""
    return f"Remove all {_plural(item_count, 'reference')}? This cannot be undone from here."


def build_sort_button_label(known_ascending: bool, *, ascii_only: bool = False) -> str:
    """Sort button label with the direction the next press will apply."""
    if ascii_only:
        arrow = "v" if known_ascending else "^"
    else:
        arrow = "↓" if known_ascending else "↑"
    return f"Sort ({arrow})"


__all__ = [
    "build_actionable_error",
    "build_added_notification",
    "build_next_step_hint",
    "build_remove_all_prompt",
    "build_result_count_label",
    "build_sort_button_label",
]
