"""Operator-facing labels for pricing failures, in Hebrew and English."""

from __future__ import annotations

SUPPORTED_LANGUAGES = ("he", "en")

FIELD_LABELS: dict[str, dict[str, str]] = {
    "supplier_price": {"he": "מחיר ספק", "en": "Supplier price"},
    "box_cbm": {"he": "נפח קרטון (CBM)", "en": "Carton volume (CBM)"},
    "qty_per_carton": {"he": "כמות יחידות בקרטון", "en": "Units per carton"},
    "category": {"he": "קטגוריה", "en": "Category"},
    "margin_percentage": {"he": "אחוז רווח", "en": "Margin percentage"},
}

MESSAGES: dict[str, dict[str, str]] = {
    "item_not_found": {"he": "פריט לא נמצא", "en": "Item not found"},
    "missing_data": {
        "he": "לא ניתן לחשב מחיר - חסרים נתונים",
        "en": "Cannot calculate price - missing data",
    },
    "margin_missing": {
        "he": "לא ניתן לחשב מחיר - חסר אחוז רווח לקטגוריה",
        "en": "Cannot calculate price - no margin rule for category",
    },
    "no_currency_rate": {
        "he": "אין שער דולר זמין במערכת",
        "en": "No USD exchange rate is available",
    },
}


def normalize_language(value: str | None, default: str = "he") -> str:
    """Pick a supported language from a tag or an Accept-Language header."""
    if not value:
        return default
    for part in value.split(","):
        tag = part.split(";")[0].strip().lower()[:2]
        if tag in SUPPORTED_LANGUAGES:
            return tag
    return default


def field_label(field: str, language: str) -> str:
    labels = FIELD_LABELS[field]
    return labels.get(language, labels["en"])


def message(key: str, language: str) -> str:
    texts = MESSAGES[key]
    return texts.get(language, texts["en"])
