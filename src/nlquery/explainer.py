"""
Template-based explanations shown to end users.

Turns an interpretation outcome (rejected input, unsupported question,
security rejection, low confidence) into a short message in the language
of the question. Messages never contain SQL.
"""
from __future__ import annotations

from src.core.logging import get_logger

logger = get_logger(__name__)

INPUT_INVALID = "input_invalid"
UNSUPPORTED_DOMAIN = "unsupported_domain"
SECURITY_REJECTED = "security_rejected"
LOW_CONFIDENCE = "low_confidence"

_TEMPLATES: dict[str, dict[str, str]] = {
    INPUT_INVALID: {
        "de": "Die Anfrage muss zwischen {min_len} und {max_len} Zeichen lang sein.",
        "en": "The question must be between {min_len} and {max_len} characters long.",
    },
    UNSUPPORTED_DOMAIN: {
        "de": (
            "Ich konnte die Frage keinem Bereich zuordnen. Fragen Sie nach Leads, "
            "Kontakten, Buchungen, Umsatz oder einer Übersicht."
        ),
        "en": (
            "I could not match the question to a known area. Ask about leads, "
            "contacts, bookings, revenue, or an overview."
        ),
    },
    SECURITY_REJECTED: {
        "de": "Die Anfrage konnte aus Sicherheitsgründen nicht ausgeführt werden.",
        "en": "The request could not be processed for security reasons.",
    },
    LOW_CONFIDENCE: {
        "de": "Möglicherweise nicht das, was Sie meinten (Sicherheit {confidence:.0%}).",
        "en": "Possibly not what you meant (confidence {confidence:.0%}).",
    },
}

_FALLBACK = {
    "de": "Die Anfrage konnte nicht verarbeitet werden.",
    "en": "The request could not be processed.",
}


def explain(code: str, language: str = "de", **context: object) -> str:
    """Return the user-facing message for *code* in *language*.

    Unknown codes and languages fall back to a generic message; missing
    template placeholders are never an error.
    """
    lang = language if language in ("de", "en") else "en"
    template = _TEMPLATES.get(code, {}).get(lang)
    if template is None:
        logger.debug("No explanation template for code=%s lang=%s", code, lang)
        return _FALLBACK[lang]
    try:
        return template.format(**context)
    except (KeyError, ValueError):
        logger.warning("Explanation template %s missing context %s", code, sorted(context))
        return _FALLBACK[lang]
