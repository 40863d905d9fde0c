"""
Validation helpers shared by the index and suggestion services.

These raise ``ValidationError`` so that bad input is reported with the same
error envelope whether it arrives over HTTP or from an in-process caller.
"""

from typing import Any

from app.config import settings
from app.constants import ContentType
from app.exceptions import ValidationError


def validate_language(language: str, field: str = "language") -> str:
    if language not in settings.search_languages:
        raise ValidationError(
            f"Language must be one of: {', '.join(settings.search_languages)}",
            field=field,
            details={"value": language},
        )
    return language


def validate_content_type(content_type: Any, field: str = "content_type") -> ContentType:
    if isinstance(content_type, ContentType):
        return content_type
    try:
        return ContentType(str(content_type).upper())
    except ValueError as err:
        raise ValidationError(
            f"Content type must be one of: {', '.join(t.value for t in ContentType)}",
            field=field,
            details={"value": content_type},
        ) from err


def validate_translations(value: Any, field: str, required: bool = True) -> dict[str, str] | None:
    """Check a per-language text map: supported keys, string values, non-empty when required."""
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be a mapping of language to text", field=field)

    cleaned: dict[str, str] = {}
    for language, text in value.items():
        validate_language(language, field=f"{field}.{language}")
        if text is None:
            continue
        if not isinstance(text, str):
            raise ValidationError(f"{field}.{language} must be a string", field=f"{field}.{language}")
        cleaned[language] = text

    if required and not any(text.strip() for text in cleaned.values()):
        raise ValidationError(f"{field} must have text in at least one language", field=field)
    return cleaned


def validate_tags(tags: Any) -> list[str]:
    if tags is None:
        return []
    if not isinstance(tags, (list, tuple, set)) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags must be a list of strings", field="tags")
    # de-duplicate, keep first-seen order
    seen: dict[str, None] = {}
    for tag in tags:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)
