from doclib.config import settings
from doclib.errors import ValidationError

FALLBACK_LANG = "ru"


def normalize_lang(lang: str | None) -> str | None:
    if lang is None:
        return None
    value = str(lang).strip().lower()
    return value or None


def require_lang(lang: str | None) -> str:
    value = normalize_lang(lang)
    if value not in settings.supported_langs:
        raise ValidationError(
            f"Unsupported language: {lang}. "
            f"Allowed: {', '.join(settings.supported_langs)}"
        )
    return value


def lang_preference(preferred: str | None = None) -> list[str]:
    """Order in which languages are tried when picking a translation or asset."""
    order = []
    for candidate in (normalize_lang(preferred), settings.default_data_lang, FALLBACK_LANG):
        if candidate and candidate not in order:
            order.append(candidate)
    return order


def pick_by_lang(rows, preferred: str | None = None):
    """Return the row best matching ``preferred``, or None for an empty input.

    Falls back to the default data language, then ``ru``, then the first row.
    """
    rows = list(rows)
    if not rows:
        return None
    by_lang = {row.lang: row for row in rows}
    for candidate in lang_preference(preferred):
        if candidate in by_lang:
            return by_lang[candidate]
    return rows[0]


def available_langs(rows) -> list[str]:
    return sorted({row.lang for row in rows})


def validate_translations(translations, require_one: bool = True) -> list[dict]:
    """Normalize a translation payload into ``{lang, title, description}`` dicts.

    Rejects an empty set, unsupported or duplicate languages and blank titles.
    """
    items = []
    seen = set()
    for entry in translations or []:
        data = entry.model_dump() if hasattr(entry, "model_dump") else dict(entry)
        lang = require_lang(data.get("lang"))
        if lang in seen:
            raise ValidationError(f"Duplicate translation language: {lang}")
        seen.add(lang)
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError(f"Translation title is required for {lang}")
        description = data.get("description")
        if isinstance(description, str):
            description = description.strip() or None
        items.append({"lang": lang, "title": title, "description": description})
    if require_one and not items:
        raise ValidationError("At least one translation is required")
    return items
