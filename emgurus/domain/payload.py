"""Kind-specific payload checks: submission completeness and guru edit whitelists."""

from typing import Any

from emgurus.domain.entities import ContentItem
from emgurus.rules.models import ReviewRules

OPTION_FIELDS = {f"option_{letter}": letter for letter in "abcde"}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def missing_fields(item: ContentItem, rules: ReviewRules) -> list[str]:
    """Return the fields that keep ``item`` from being submitted, empty if complete."""
    missing: list[str] = []

    if item.kind == "blog":
        if len(_text(item.title)) < rules.blog.min_title:
            missing.append("title")
        if len(_text(item.body)) < rules.blog.min_body:
            missing.append("body")
        return missing

    if len(_text(item.title)) < rules.exam_question.min_stem:
        missing.append("question_text")

    options = item.payload.get("options") or {}
    filled = {k: v for k, v in options.items() if _text(v)}
    if len(filled) < rules.exam_question.min_options:
        missing.append("options")

    correct = item.payload.get("correct_answer")
    if not correct or correct not in filled:
        missing.append("correct_answer")

    return missing


def sanitize_exam_updates(updates: dict[str, Any], editable: list[str]) -> dict[str, Any]:
    """Keep only whitelisted question fields, dropping everything else silently."""
    allowed = set(editable)
    return {k: v for k, v in (updates or {}).items() if k in allowed}


def apply_exam_updates(item: ContentItem, updates: dict[str, Any]) -> ContentItem:
    """Map flat question fields (question_text, option_a, ...) onto the item."""
    if not updates:
        return item

    changes: dict[str, Any] = {}
    payload = dict(item.payload)
    options = dict(payload.get("options") or {})

    for key, value in updates.items():
        if key == "question_text":
            changes["title"] = value if isinstance(value, str) else ""
        elif key == "explanation":
            changes["body"] = value if isinstance(value, str) else ""
        elif key in OPTION_FIELDS:
            options[OPTION_FIELDS[key]] = value
        else:
            payload[key] = value

    payload["options"] = options
    changes["payload"] = payload
    return item.model_copy(update=changes)


def exam_fields(item: ContentItem) -> dict[str, Any]:
    """Flatten an exam question back into the field names the review screens use."""
    options = item.payload.get("options") or {}
    out: dict[str, Any] = {
        "question_text": item.title,
        "explanation": item.body,
    }
    for field, letter in OPTION_FIELDS.items():
        if letter in options:
            out[field] = options[letter]
    for key, value in item.payload.items():
        if key != "options":
            out[key] = value
    return out


def apply_blog_updates(item: ContentItem, updates: dict[str, Any], editable: list[str]) -> ContentItem:
    """Apply whitelisted blog edits; anything besides title and body lives in the payload."""
    allowed = {k: v for k, v in (updates or {}).items() if k in set(editable)}
    if not allowed:
        return item

    changes: dict[str, Any] = {}
    payload = dict(item.payload)
    for key, value in allowed.items():
        if key in ("title", "body"):
            changes[key] = value if isinstance(value, str) else ""
        else:
            payload[key] = value
    changes["payload"] = payload
    return item.model_copy(update=changes)
