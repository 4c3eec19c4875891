"""
Query classifier — converts a natural-language CRM question into a
QueryClassification.

Rule-based and deterministic: every decision comes from the compiled
pattern tables, evaluated in a fixed priority order. The current time is
passed in by the caller so identical ``(text, now)`` pairs always yield
identical classifications.
"""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Any

from src.nlquery.models import (
    AbsoluteTimeframe,
    Aggregation,
    Filter,
    FilterOperator,
    Intent,
    QueryClassification,
    QueryDomain,
    RelativeTimeframe,
)
from src.nlquery.pattern_loader import load_pattern_tables, PatternTables
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Confidence weights ───────────────────────────────────

_BASE_CONFIDENCE = 0.1
_DOMAIN_MATCH_WEIGHT = 0.3
_DOMAIN_HINT_WEIGHT = 0.15      # hint used without any supporting pattern
_INTENT_WEIGHT = 0.05          # domain + intent alone stays below 0.5
_ENTITY_WEIGHT = 0.15
_MAX_ENTITY_WEIGHT = 0.3
_TIMEFRAME_WEIGHT = 0.15
_UNKNOWN_CAP = 0.4

_MATCH_PATTERN = "pattern"
_MATCH_HINT = "hint"
_MATCH_NONE = "none"


def _any_match(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


# ── Domain & intent ──────────────────────────────────────

def _classify_domain(
    text: str,
    explicit_context: QueryDomain | None,
    tables: PatternTables,
) -> tuple[QueryDomain, str]:
    """Return the winning domain and how it was decided."""
    hint = explicit_context if explicit_context not in (None, QueryDomain.UNKNOWN) else None

    if hint is not None and _any_match(tables.domains.get(hint.value, ()), text):
        return hint, _MATCH_PATTERN

    for name, patterns in tables.domains.items():
        if _any_match(patterns, text):
            return QueryDomain(name), _MATCH_PATTERN

    if hint is not None:
        return hint, _MATCH_HINT
    return QueryDomain.UNKNOWN, _MATCH_NONE


def _detect_intent(text: str, tables: PatternTables) -> tuple[Intent, bool]:
    """First matching intent family wins; ``list`` when nothing matches."""
    for name, patterns in tables.intents.items():
        if _any_match(patterns, text):
            return Intent(name), True
    return Intent.LIST, False


def _aggregation_for(intent: Intent) -> Aggregation | None:
    if intent is Intent.COUNT:
        return Aggregation.COUNT
    if intent is Intent.SUM:
        return Aggregation.SUM
    return None


# ── Entity extraction ────────────────────────────────────

def _first_alias(text: str, families: dict) -> str | None:
    for name, patterns in families.items():
        if _any_match(patterns, text):
            return name
    return None


def _parse_amount(raw: str) -> int:
    return int(raw.replace(".", "").replace(",", ""))


def _extract_budget(text: str, tables: PatternTables) -> tuple[int, str | None] | None:
    """First number next to a currency or budget keyword, plus its qualifier."""
    budget = tables.budget
    matches = [m for m in (budget.with_currency.search(text), budget.with_keyword.search(text)) if m]
    if not matches:
        return None

    first_start = min(m.start("amount") for m in matches)
    same_number = [m for m in matches if m.start("amount") == first_start]
    amount = _parse_amount(same_number[0].group("amount"))

    qualifier: str | None = None
    for m in same_number:
        qual = m.group("qual")
        if not qual:
            continue
        if budget.under_words.fullmatch(qual):
            qualifier = "under"
        elif budget.over_words.fullmatch(qual):
            qualifier = "over"
        break
    return amount, qualifier


def _extract_entities(text: str, tables: PatternTables) -> tuple[dict[str, Any], str | None]:
    """Return extracted entities and the budget qualifier (over | under | None)."""
    entities: dict[str, Any] = {}

    status = _first_alias(text, tables.lead_status)
    if status:
        entities["leadStatus"] = status

    for country in tables.countries:
        if _any_match(country.patterns, text):
            entities["country"] = country.key
            break

    qualifier: str | None = None
    budget = _extract_budget(text, tables)
    if budget is not None:
        entities["budgetAmount"], qualifier = budget

    booking_status = _first_alias(text, tables.booking_status)
    if booking_status:
        entities["bookingStatus"] = booking_status

    return entities, qualifier


def _derive_filters(
    entities: dict[str, Any],
    budget_qualifier: str | None,
    domain: QueryDomain,
    tables: PatternTables,
) -> list[Filter]:
    """Expand entities into typed filters (order: status, country, budget, booking status)."""
    filters: list[Filter] = []

    if "leadStatus" in entities and domain is not QueryDomain.ANALYTICS:
        band = tables.band(entities["leadStatus"])
        filters.append(Filter(field="lead_score", operator=FilterOperator.BETWEEN, value=band.as_range()))

    if "country" in entities:
        filters.append(
            Filter(
                field="country",
                operator=FilterOperator.EQ,
                value=tables.country_display(entities["country"]),
            )
        )

    if "budgetAmount" in entities:
        op = FilterOperator.LTE if budget_qualifier == "under" else FilterOperator.GTE
        filters.append(Filter(field="budget_max", operator=op, value=entities["budgetAmount"]))

    if "bookingStatus" in entities and domain is QueryDomain.BOOKINGS:
        filters.append(Filter(field="status", operator=FilterOperator.EQ, value=entities["bookingStatus"]))

    return filters


# ── Timeframe ────────────────────────────────────────────

def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def _subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _period_start(now: datetime, period: str, count: int) -> datetime:
    if period == "day":
        return now - timedelta(days=count)
    if period == "week":
        return now - timedelta(weeks=count)
    return _subtract_months(now, count)


def _extract_timeframe(text: str, now: datetime, tables: PatternTables):
    time = tables.time

    if time.today.search(text):
        return AbsoluteTimeframe(start=_start_of_day(now), end=_end_of_day(now))

    if time.yesterday.search(text):
        yesterday = now - timedelta(days=1)
        return AbsoluteTimeframe(start=_start_of_day(yesterday), end=_end_of_day(yesterday))

    if time.this_month.search(text):
        return AbsoluteTimeframe(start=_start_of_day(now.replace(day=1)), end=now)

    m = time.relative.search(text)
    if m:
        period = time.period_for(m.group("unit"))
        count = int(m.group("count")) if m.group("count") else 1
        if not period or count < 1:
            return None
        limit = time.max_count.get(period)
        if limit is not None and count > limit:
            logger.info("Ignoring relative timeframe: %d %s exceeds limit %d", count, period, limit)
            return None
        try:
            start = _period_start(now, period, count)
        except (OverflowError, ValueError):
            logger.info("Ignoring relative timeframe: %d %s is out of the calendar range", count, period)
            return None
        return RelativeTimeframe(period=period, count=count, start=start, end=now)

    return None


# ── Confidence & language ────────────────────────────────

def _score(domain_match: str, has_intent: bool, entity_count: int, has_timeframe: bool) -> float:
    confidence = _BASE_CONFIDENCE
    if domain_match == _MATCH_PATTERN:
        confidence += _DOMAIN_MATCH_WEIGHT
    elif domain_match == _MATCH_HINT:
        confidence += _DOMAIN_HINT_WEIGHT
    if has_intent:
        confidence += _INTENT_WEIGHT
    confidence += min(entity_count * _ENTITY_WEIGHT, _MAX_ENTITY_WEIGHT)
    if has_timeframe:
        confidence += _TIMEFRAME_WEIGHT
    if domain_match == _MATCH_NONE:
        confidence = min(confidence, _UNKNOWN_CAP)
    return round(min(confidence, 1.0), 2)


def _detect_language(text: str, tables: PatternTables) -> str:
    return "de" if _any_match(tables.german_markers, text) else "en"


# ── Public API ───────────────────────────────────────────

def parse(
    text: str,
    explicit_context: QueryDomain | None = None,
    *,
    now: datetime,
) -> QueryClassification:
    """Classify *text* into a QueryClassification.

    Parameters
    ----------
    text : str
        The user's question, already length-checked by the caller.
    explicit_context : QueryDomain, optional
        Caller-supplied domain hint, used to break ties or when no domain
        pattern matches.
    now : datetime
        Reference instant for relative and absolute timeframes.
    """
    tables = load_pattern_tables()
    normalized = text.lower().strip()

    domain, domain_match = _classify_domain(normalized, explicit_context, tables)
    intent, has_intent = _detect_intent(normalized, tables)
    entities, budget_qualifier = _extract_entities(normalized, tables)
    filters = _derive_filters(entities, budget_qualifier, domain, tables)
    timeframe = _extract_timeframe(normalized, now, tables)

    classification = QueryClassification(
        domain=domain,
        intent=intent,
        entities=entities,
        filters=filters,
        timeframe=timeframe,
        aggregation=_aggregation_for(intent),
        confidence=_score(domain_match, has_intent, len(entities), timeframe is not None),
        language=_detect_language(normalized, tables),
    )
    logger.info(
        "Classifier -> %s | domain_match=%s | confidence=%.2f | filters=%d",
        classification.interpreted_query, domain_match,
        classification.confidence, len(filters),
    )
    return classification
