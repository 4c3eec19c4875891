"""POST /query -- natural-language question to a tenant-scoped query (dry-run, never executed)."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, Header, HTTPException

from src.nlquery.models import QueryDomain
from src.nlquery.service import interpret, capabilities
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class QueryRequest(BaseModel):
    query: str = Field(..., min_length=3, max_length=500, description="Natural-language CRM question")
    context: QueryDomain | None = Field(None, description="Optional domain hint from the calling page")


class ClassificationResponse(BaseModel):
    query_type: str
    intent: str
    interpreted_query: str
    entities: dict[str, Any]
    filters: list[dict[str, Any]]
    timeframe: dict[str, Any] | None
    confidence: float
    language: str
    low_confidence: bool


class BuiltQueryResponse(BaseModel):
    sql: str | None
    params: list[Any]
    tables: list[str]
    visualization_type: str
    expected_columns: list[str]


class QueryResponse(BaseModel):
    query: str
    success: bool
    classification: ClassificationResponse | None
    built_query: BuiltQueryResponse | None
    error_code: str | None
    input_errors: list[str]
    warnings: list[str]
    explanation: str
    suggestions: list[str]
    latency_ms: int


class CapabilitiesResponse(BaseModel):
    service: str
    status: str
    supported_languages: list[str]
    query_types: list[str]
    intents: list[str]
    visualization_types: list[str]
    examples: dict[str, list[str]]



@router.post("", response_model=QueryResponse)
def query_endpoint(req: QueryRequest, x_tenant_id: str = Header(..., min_length=1)):
    """Classify the question and compile it into parameterized SQL."""
    try:
        result = interpret(req.query, x_tenant_id, domain_hint=req.context)
    except Exception:
        logger.exception("Query.interpret failed")
        raise HTTPException(status_code=500, detail="Failed to process query")

    classification_resp = None
    c = result.classification
    if c is not None:
        classification_resp = ClassificationResponse(
            query_type=c.domain.value,
            intent=c.intent.value,
            interpreted_query=c.interpreted_query,
            entities=c.entities,
            filters=[f.model_dump(mode="json") for f in c.filters],
            timeframe=c.timeframe.model_dump(mode="json") if c.timeframe else None,
            confidence=c.confidence,
            language=c.language,
            low_confidence=c.is_ambiguous,
        )

    built_resp = None
    if result.query is not None:
        built_resp = BuiltQueryResponse(
            sql=result.visible_sql,
            params=result.query.params if result.sql_exposed else [],
            tables=result.query.tables,
            visualization_type=result.query.visualization_type.value,
            expected_columns=result.query.expected_columns,
        )

    return QueryResponse(
        query=req.query,
        success=result.success,
        classification=classification_resp,
        built_query=built_resp,
        error_code=result.error_code,
        input_errors=result.input_errors,
        warnings=result.warnings,
        explanation=result.explanation,
        suggestions=result.suggestions,
        latency_ms=result.latency_ms,
    )


@router.get("/capabilities", response_model=CapabilitiesResponse)
def capabilities_endpoint():
    """Languages, query types, intents and example questions."""
    return CapabilitiesResponse(
        service="Natural Language Query Interface",
        status="operational",
        **capabilities(),
    )
