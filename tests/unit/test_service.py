"""
Unit tests -- query service: input checks -> classify -> build -> safety.
Nothing is executed; every call is a dry run.
"""
from datetime import datetime, timezone

from src.nlquery import service
from src.nlquery.models import BuiltQuery, QueryDomain, VisualizationType
from src.nlquery.service import InterpretResult, capabilities, interpret

TENANT = "tenant-42"
NOW = datetime(2025, 3, 15, 14, 30, tzinfo=timezone.utc)


def _interpret(question, **kwargs):
    return interpret(question, TENANT, now=NOW, **kwargs)


# ── Happy path ───────────────────────────────────────────

def test_returns_interpret_result():
    assert isinstance(_interpret("Wie viele Leads haben wir?"), InterpretResult)


def test_success_on_clear_question():
    result = _interpret("Zeige mir alle heißen Leads aus Deutschland der letzten Woche")
    assert result.success is True
    assert result.error_code is None
    assert result.input_errors == []
    assert result.warnings == []
    assert result.query.params[0] == TENANT
    assert "tenant_id = $1" in result.query.sql


def test_high_confidence_exposes_sql():
    result = _interpret("Zeige mir alle heißen Leads aus Deutschland der letzten Woche")
    assert result.classification.confidence > 0.7
    assert result.sql_exposed is True
    assert result.visible_sql == result.query.sql


def test_moderate_confidence_hides_sql():
    result = _interpret("Leads aus Deutschland")
    assert result.success is True
    assert result.classification.confidence <= 0.7
    assert result.sql_exposed is False
    assert result.visible_sql is None
    assert result.query is not None


def test_low_confidence_warns_but_still_builds():
    result = _interpret("Leads")
    assert result.success is True
    assert len(result.warnings) == 1
    assert "40%" in result.warnings[0]


def test_domain_hint_passed_to_classifier():
    result = _interpret("Zeige mir alle aus Deutschland", domain_hint=QueryDomain.CONTACTS)
    assert result.classification.domain == QueryDomain.CONTACTS
    assert result.success is True


def test_latency_tracked():
    assert _interpret("Gesamtumsatz der letzten 30 Tage").latency_ms >= 0


def test_now_defaults_to_wall_clock():
    result = interpret("Neue Kontakte heute", TENANT)
    assert result.classification.timeframe.start.tzinfo is not None


# ── Follow-up suggestions ────────────────────────────────

def test_follow_ups_for_leads_in_german():
    result = _interpret("Zeige mir alle heißen Leads")
    assert result.suggestions[0] == "Zeige mir mehr Details zu diesen Leads"


def test_follow_ups_default_in_english():
    result = _interpret("Show me all bookings from yesterday")
    assert result.suggestions[0] == "Show me more details about these results"


# ── Refusals ─────────────────────────────────────────────

def test_too_short_rejected_before_classification():
    result = _interpret("Hi")
    assert result.success is False
    assert result.error_code == "input_invalid"
    assert result.classification is None
    assert any("too short" in e for e in result.input_errors)


def test_too_long_rejected():
    result = _interpret("Leads " * 100)
    assert result.error_code == "input_invalid"
    assert any("too long" in e for e in result.input_errors)


def test_missing_tenant_rejected():
    result = interpret("Wie viele Leads?", "  ", now=NOW)
    assert result.success is False
    assert any("tenant" in e for e in result.input_errors)


def test_unknown_domain_refused():
    result = _interpret("Zeige mir etwas")
    assert result.success is False
    assert result.error_code == "unsupported_domain"
    assert result.query is None
    assert result.classification.domain == QueryDomain.UNKNOWN
    assert result.suggestions == []
    assert "Leads" in result.explanation


def test_english_question_naming_austria_answered_in_english():
    result = _interpret("Show me something from Österreich")
    assert result.error_code == "unsupported_domain"
    assert result.explanation.startswith("I could not match")


def test_oversized_timeframe_still_builds():
    result = _interpret("Umsatz der letzten 1000000 Tage")
    assert result.success is True
    assert result.classification.timeframe is None


def test_security_rejection_drops_query(monkeypatch):
    def _unsafe_build(classification, tenant_id):
        return BuiltQuery(
            sql="SELECT * FROM contacts WHERE tenant_id = $1; DROP TABLE contacts",
            params=[tenant_id],
            visualization_type=VisualizationType.TABLE,
        )

    monkeypatch.setattr(service, "build", _unsafe_build)
    result = _interpret("Zeige mir alle heißen Leads aus Deutschland der letzten Woche")
    assert result.success is False
    assert result.error_code == "security_rejected"
    assert result.query is None
    assert result.visible_sql is None
    assert "DROP" not in result.explanation


# ── Capabilities ─────────────────────────────────────────

def test_capabilities():
    caps = capabilities()
    assert caps["supported_languages"] == ["de", "en"]
    assert "unknown" not in caps["query_types"]
    assert caps["query_types"] == ["leads", "bookings", "revenue", "contacts", "analytics"]
    assert "count" in caps["intents"]
    assert "metrics" in caps["visualization_types"]
    assert len(caps["examples"]["de"]) == 5
