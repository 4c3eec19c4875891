"""
Unit tests -- explainer: bilingual user-facing messages.
"""
import pytest
from src.nlquery import explainer


@pytest.mark.parametrize("code", [
    explainer.UNSUPPORTED_DOMAIN,
    explainer.SECURITY_REJECTED,
])
def test_messages_differ_by_language(code):
    de = explainer.explain(code, "de")
    en = explainer.explain(code, "en")
    assert de and en
    assert de != en


def test_unsupported_domain_lists_areas():
    msg = explainer.explain(explainer.UNSUPPORTED_DOMAIN, "en")
    for area in ("leads", "contacts", "bookings", "revenue"):
        assert area in msg


def test_low_confidence_formats_percentage():
    msg = explainer.explain(explainer.LOW_CONFIDENCE, "de", confidence=0.35)
    assert "35%" in msg


def test_input_invalid_mentions_bounds():
    msg = explainer.explain(explainer.INPUT_INVALID, "en", min_len=3, max_len=500)
    assert "3" in msg and "500" in msg


def test_security_message_has_no_sql():
    msg = explainer.explain(explainer.SECURITY_REJECTED, "en")
    assert "SELECT" not in msg.upper()


def test_missing_context_falls_back():
    assert explainer.explain(explainer.LOW_CONFIDENCE, "en") == "The request could not be processed."


def test_unknown_code_falls_back():
    assert explainer.explain("no_such_code", "de") == "Die Anfrage konnte nicht verarbeitet werden."


def test_unknown_language_uses_english():
    assert explainer.explain(explainer.SECURITY_REJECTED, "fr") == explainer.explain(
        explainer.SECURITY_REJECTED, "en"
    )
