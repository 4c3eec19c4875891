"""
Unit tests -- pydantic value types: filters, timeframes, classifications, built queries.
"""
from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from src.nlquery.models import (
    AbsoluteTimeframe,
    BuiltQuery,
    Filter,
    FilterOperator,
    Intent,
    QueryClassification,
    QueryDomain,
    RelativeTimeframe,
    Timeframe,
    VisualizationType,
)

START = datetime(2025, 3, 8, tzinfo=timezone.utc)
END = datetime(2025, 3, 15, tzinfo=timezone.utc)


# ── Filter ───────────────────────────────────────────────

def test_between_filter():
    f = Filter(field="lead_score", operator="between", value=[70, 100])
    assert f.operator is FilterOperator.BETWEEN
    assert f.value == [70, 100]


@pytest.mark.parametrize("value", [70, [70], [1, 2, 3]])
def test_between_needs_two_values(value):
    with pytest.raises(ValidationError):
        Filter(field="lead_score", operator="between", value=value)


def test_scalar_operator_rejects_list():
    with pytest.raises(ValidationError):
        Filter(field="country", operator="eq", value=["Germany", "Austria"])


def test_unknown_operator_rejected():
    with pytest.raises(ValidationError):
        Filter(field="country", operator="regex", value="G.*")


def test_filter_is_frozen():
    f = Filter(field="country", operator="eq", value="Germany")
    with pytest.raises(ValidationError):
        f.value = "Austria"


# ── Timeframe ────────────────────────────────────────────

def test_relative_count_must_be_positive():
    with pytest.raises(ValidationError):
        RelativeTimeframe(period="day", count=0, start=START, end=END)


def test_relative_period_restricted():
    with pytest.raises(ValidationError):
        RelativeTimeframe(period="year", count=1, start=START, end=END)


def test_timeframe_discriminated_by_type():
    adapter = TypeAdapter(Timeframe)
    rel = adapter.validate_python(
        {"type": "relative", "period": "week", "count": 1, "start": START, "end": END}
    )
    absolute = adapter.validate_python({"type": "absolute", "start": START, "end": END})
    assert isinstance(rel, RelativeTimeframe)
    assert isinstance(absolute, AbsoluteTimeframe)


# ── QueryClassification ──────────────────────────────────

def test_classification_defaults():
    c = QueryClassification(domain=QueryDomain.LEADS, confidence=0.4)
    assert c.intent is Intent.LIST
    assert c.entities == {}
    assert c.filters == []
    assert c.timeframe is None
    assert c.aggregation is None
    assert c.language == "de"


@pytest.mark.parametrize("confidence", [-0.1, 1.01])
def test_confidence_bounds(confidence):
    with pytest.raises(ValidationError):
        QueryClassification(domain=QueryDomain.LEADS, confidence=confidence)


def test_ambiguity_threshold():
    assert QueryClassification(domain=QueryDomain.LEADS, confidence=0.49).is_ambiguous
    assert not QueryClassification(domain=QueryDomain.LEADS, confidence=0.5).is_ambiguous


def test_classification_json_roundtrip_keeps_timeframe_variant():
    c = QueryClassification(
        domain=QueryDomain.BOOKINGS,
        intent=Intent.COUNT,
        timeframe=AbsoluteTimeframe(start=START, end=END),
        confidence=0.7,
    )
    restored = QueryClassification.model_validate_json(c.model_dump_json())
    assert isinstance(restored.timeframe, AbsoluteTimeframe)
    assert restored == c


# ── BuiltQuery ───────────────────────────────────────────

def test_built_query_placeholder_parity():
    q = BuiltQuery(
        sql="SELECT 1 FROM contacts AS c JOIN bookings AS b ON b.tenant_id = $1 WHERE c.tenant_id = $1 AND c.country = $2",
        params=["tenant", "Germany"],
        visualization_type=VisualizationType.TABLE,
    )
    assert q.placeholder_count == 2


def test_built_query_rejects_missing_param():
    with pytest.raises(ValidationError):
        BuiltQuery(
            sql="SELECT 1 FROM contacts WHERE tenant_id = $1 AND country = $2",
            params=["tenant"],
            visualization_type=VisualizationType.TABLE,
        )


def test_built_query_rejects_unused_param():
    with pytest.raises(ValidationError):
        BuiltQuery(
            sql="SELECT 1 FROM contacts WHERE tenant_id = $1",
            params=["tenant", "extra"],
            visualization_type=VisualizationType.METRICS,
        )


def test_built_query_rejects_gap():
    with pytest.raises(ValidationError):
        BuiltQuery(
            sql="SELECT 1 FROM contacts WHERE tenant_id = $1 AND country = $3",
            params=["tenant", "x", "Germany"],
            visualization_type=VisualizationType.TABLE,
        )
