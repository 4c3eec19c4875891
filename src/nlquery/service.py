"""
Query service -- orchestrates input checks -> classify -> build -> safety.

This is the boundary the HTTP layer calls. It never executes SQL: the
returned query is handed to an external parameterized-query client.
It is also the only place that reads the wall clock, and only when the
caller does not supply ``now``.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from src.core.config import get_settings
from src.governance.sql_safety import ensure_safe
from src.nlquery import explainer
from src.nlquery.classifier import parse
from src.nlquery.errors import SecurityRejectedError, UnsupportedDomainError
from src.nlquery.models import BuiltQuery, Intent, QueryClassification, QueryDomain, VisualizationType
from src.nlquery.pattern_loader import load_pattern_tables
from src.nlquery.sql_builder import build
from src.core.logging import get_logger

logger = get_logger(__name__)

_FOLLOW_UPS: dict[str, dict[str, list[str]]] = {
    "de": {
        QueryDomain.LEADS.value: ["Zeige mir mehr Details zu diesen Leads", "Exportiere diese Daten als CSV"],
        "default": ["Zeige mir mehr Details zu diesen Ergebnissen", "Exportiere diese Daten als CSV"],
    },
    "en": {
        QueryDomain.LEADS.value: ["Show me more details about these leads", "Export this data as CSV"],
        "default": ["Show me more details about these results", "Export this data as CSV"],
    },
}


class InterpretResult:
    def __init__(
        self,
        question: str,
        classification: QueryClassification | None,
        query: BuiltQuery | None,
        error_code: str | None = None,
        input_errors: list[str] | None = None,
        warnings: list[str] | None = None,
        explanation: str = "",
        suggestions: list[str] | None = None,
        sql_exposed: bool = False,
        latency_ms: int = 0,
    ):
        self.question = question
        self.classification = classification
        self.query = query
        self.error_code = error_code
        self.input_errors = input_errors or []
        self.warnings = warnings or []
        self.explanation = explanation
        self.suggestions = suggestions or []
        self.sql_exposed = sql_exposed
        self.latency_ms = latency_ms

    @property
    def success(self) -> bool:
        return self.query is not None and self.error_code is None and not self.input_errors

    @property
    def visible_sql(self) -> str | None:
        """SQL as it may be shown to the end user (None below the exposure threshold)."""
        if self.query is None or not self.sql_exposed:
            return None
        return self.query.sql


def _check_input(question: str, tenant_id: str) -> list[str]:
    settings = get_settings()
    errors: list[str] = []
    length = len(question.strip())
    if length < settings.min_query_length:
        errors.append(f"Question is too short (minimum {settings.min_query_length} characters).")
    if length > settings.max_query_length:
        errors.append(f"Question is too long (maximum {settings.max_query_length} characters).")
    if not tenant_id or not tenant_id.strip():
        errors.append("No tenant associated with the request.")
    return errors


def _follow_ups(classification: QueryClassification) -> list[str]:
    if classification.domain is QueryDomain.UNKNOWN:
        return []
    by_domain = _FOLLOW_UPS[classification.language]
    return list(by_domain.get(classification.domain.value, by_domain["default"]))


def current_time() -> datetime:
    """Wall-clock "now" in the configured timezone."""
    return datetime.now(ZoneInfo(get_settings().timezone))


def interpret(
    question: str,
    tenant_id: str,
    domain_hint: QueryDomain | None = None,
    now: datetime | None = None,
) -> InterpretResult:
    """End-to-end: question -> validated, tenant-scoped query (not executed).

    Parameters
    ----------
    question : str
        Natural-language CRM question (3..500 characters).
    tenant_id : str
        Already-resolved tenant identifier; bound as ``$1``.
    domain_hint : QueryDomain | None
        Optional context from the calling page (e.g. the leads dashboard).
    now : datetime | None
        Reference instant for timeframes. Defaults to the current time.
    """
    t0 = time.perf_counter()
    settings = get_settings()
    logger.info("Query.interpret | hint=%s | length=%d", domain_hint, len(question))

    # 0. Boundary checks (before classification)
    input_errors = _check_input(question, tenant_id)
    if input_errors:
        return InterpretResult(
            question=question,
            classification=None,
            query=None,
            error_code=explainer.INPUT_INVALID,
            input_errors=input_errors,
            explanation=explainer.explain(
                explainer.INPUT_INVALID, "de",
                min_len=settings.min_query_length, max_len=settings.max_query_length,
            ),
            latency_ms=int((time.perf_counter() - t0) * 1000),
        )

    # 1. Classify
    classification = parse(question, domain_hint, now=now or current_time())
    lang = classification.language

    warnings: list[str] = []
    explanation = ""
    if classification.confidence < settings.low_confidence_threshold:
        explanation = explainer.explain(
            explainer.LOW_CONFIDENCE, lang, confidence=classification.confidence,
        )
        warnings.append(explanation)

    # 2. Build + 3. safety-check
    query: BuiltQuery | None = None
    error_code: str | None = None
    try:
        query = build(classification, tenant_id)
        ensure_safe(query.sql)
    except UnsupportedDomainError as exc:
        logger.info("Refused to build query: %s", exc)
        error_code = exc.code
        explanation = explainer.explain(error_code, lang)
    except SecurityRejectedError as exc:
        logger.error("Builder output rejected by safety checks: %s", exc.violations)
        query = None
        error_code = exc.code
        explanation = explainer.explain(error_code, lang)

    result = InterpretResult(
        question=question,
        classification=classification,
        query=query,
        error_code=error_code,
        warnings=warnings,
        explanation=explanation,
        suggestions=_follow_ups(classification) if query is not None else [],
        sql_exposed=classification.confidence > settings.sql_exposure_confidence,
        latency_ms=int((time.perf_counter() - t0) * 1000),
    )
    logger.info(
        "Query.interpret done | %s | success=%s | confidence=%.2f | latency_ms=%d",
        classification.interpreted_query, result.success,
        classification.confidence, result.latency_ms,
    )
    return result


def capabilities() -> dict[str, Any]:
    """Static description of what the engine understands."""
    examples = load_pattern_tables().examples
    return {
        "supported_languages": ["de", "en"],
        "query_types": [d.value for d in QueryDomain if d is not QueryDomain.UNKNOWN],
        "intents": [i.value for i in Intent],
        "visualization_types": [v.value for v in VisualizationType],
        "examples": {lang: list(items) for lang, items in examples.items()},
    }
