"""
SQL builder — compiles a QueryClassification into a tenant-scoped,
parameterized PostgreSQL SELECT.

Every statement comes from a fixed per-domain template. User-derived values
only ever travel as bound parameters; the SQL text contains nothing but
template fragments, allow-listed column names, and ``$n`` placeholders.
The tenant id is always ``$1``.
"""
from __future__ import annotations

from typing import Any

from src.core.config import get_settings
from src.nlquery.errors import UnsupportedDomainError
from src.nlquery.models import (
    BuiltQuery,
    Filter,
    FilterOperator,
    Intent,
    QueryClassification,
    QueryDomain,
    VisualizationType,
)
from src.nlquery.pattern_loader import load_pattern_tables
from src.core.logging import get_logger

logger = get_logger(__name__)


# ── Column allow-lists ───────────────────────────────────

CONTACTS_ALIAS = "c"
BOOKINGS_ALIAS = "b"

_FILTER_COLUMNS: dict[str, str] = {
    # field -> owning table alias
    "country": CONTACTS_ALIAS,
    "lead_score": CONTACTS_ALIAS,
    "budget_min": CONTACTS_ALIAS,
    "budget_max": CONTACTS_ALIAS,
    "city": CONTACTS_ALIAS,
    "source": CONTACTS_ALIAS,
    "email": CONTACTS_ALIAS,
    "first_name": CONTACTS_ALIAS,
    "last_name": CONTACTS_ALIAS,
    "status": BOOKINGS_ALIAS,
    "total_amount": BOOKINGS_ALIAS,
    "currency": BOOKINGS_ALIAS,
}

_OPERATOR_SQL: dict[FilterOperator, str] = {
    FilterOperator.EQ: "=",
    FilterOperator.GTE: ">=",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "ILIKE",
}

_LEAD_COLUMNS = [
    "id", "first_name", "last_name", "email", "phone", "country", "city",
    "lead_score", "budget_min", "budget_max", "source", "created_at",
]

_CONTACT_COLUMNS = [
    "id", "first_name", "last_name", "email", "phone", "country", "city",
    "budget_min", "budget_max", "source", "created_at",
]

_BOOKING_COLUMNS = [
    "b.id", "b.booking_reference", "c.first_name", "c.last_name", "c.email",
    "b.total_amount", "b.currency", "b.status", "b.booking_date",
    "b.check_in", "b.check_out", "b.created_at",
]


# ── Per-call parameter bookkeeping ───────────────────────

class _ParamBinder:
    """Collects bound values and hands out ``$n`` placeholders left to right."""

    def __init__(self) -> None:
        self.params: list[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"


class _Statement:
    """Mutable scratch space for one template; discarded after ``build``."""

    def __init__(self, tenant_id: str) -> None:
        self.binder = _ParamBinder()
        self.tenant = self.binder.bind(tenant_id)
        self.where: list[str] = []

    def where_sql(self) -> str:
        return "WHERE " + "\n  AND ".join(self.where)


# ── Clause compilers ─────────────────────────────────────

def _column_for(field: str, available: set[str]) -> str:
    alias = _FILTER_COLUMNS.get(field)
    if alias is None:
        raise ValueError(f"Unknown filter field '{field}'")
    if alias not in available:
        raise ValueError(f"Filter field '{field}' is not available for this query")
    return f"{alias}.{field}"


def _filter_clause(f: Filter, column: str, binder: _ParamBinder) -> str:
    if f.operator is FilterOperator.BETWEEN:
        low, high = f.value
        return f"{column} BETWEEN {binder.bind(low)} AND {binder.bind(high)}"
    return f"{column} {_OPERATOR_SQL[f.operator]} {binder.bind(f.value)}"


def _apply_filters(stmt: _Statement, filters: list[Filter], available: set[str]) -> None:
    for f in filters:
        stmt.where.append(_filter_clause(f, _column_for(f.field, available), stmt.binder))


def _apply_timeframe(stmt: _Statement, classification: QueryClassification, alias: str) -> None:
    tf = classification.timeframe
    if tf is None:
        return
    column = f"{alias}.created_at"
    stmt.where.append(f"{column} >= {stmt.binder.bind(tf.start.isoformat())}")
    stmt.where.append(f"{column} <= {stmt.binder.bind(tf.end.isoformat())}")


def _needs_contacts(filters: list[Filter]) -> bool:
    return any(_FILTER_COLUMNS.get(f.field) == CONTACTS_ALIAS for f in filters)


def _finish(
    stmt: _Statement,
    lines: list[str],
    tables: list[str],
    visualization: VisualizationType,
    columns: list[str],
) -> BuiltQuery:
    return BuiltQuery(
        sql="\n".join(lines),
        params=stmt.binder.params,
        tables=tables,
        visualization_type=visualization,
        expected_columns=columns,
    )


# ── Templates ────────────────────────────────────────────

def _build_leads(classification: QueryClassification, stmt: _Statement) -> BuiltQuery:
    stmt.where.append(f"c.tenant_id = {stmt.tenant}")
    _apply_filters(stmt, classification.filters, {CONTACTS_ALIAS})
    _apply_timeframe(stmt, classification, CONTACTS_ALIAS)

    if classification.intent is Intent.COUNT:
        lines = ["SELECT COUNT(*) AS total_leads", "FROM contacts AS c", stmt.where_sql()]
        return _finish(stmt, lines, ["contacts"], VisualizationType.METRICS, ["total_leads"])

    if classification.intent in (Intent.SUM, Intent.ANALYZE):
        tables = load_pattern_tables()
        select = ["COUNT(*) AS total_leads"]
        for name in ("hot", "warm", "cold"):
            band = tables.band(name)
            select.append(
                f"COUNT(*) FILTER (WHERE c.lead_score BETWEEN {band.low} AND {band.high}) AS {name}_leads"
            )
        select.append("ROUND(AVG(c.lead_score), 1) AS avg_lead_score")
        lines = ["SELECT", "  " + ",\n  ".join(select), "FROM contacts AS c", stmt.where_sql()]
        columns = ["total_leads", "hot_leads", "warm_leads", "cold_leads", "avg_lead_score"]
        return _finish(stmt, lines, ["contacts"], VisualizationType.METRICS, columns)

    select = [f"c.{col}" for col in _LEAD_COLUMNS]
    select.append("COALESCE(c.last_activity_at, c.created_at) AS last_activity")
    lines = [
        "SELECT",
        "  " + ",\n  ".join(select),
        "FROM contacts AS c",
        stmt.where_sql(),
        "ORDER BY c.lead_score DESC, c.created_at DESC",
        f"LIMIT {int(get_settings().result_limit)}",
    ]
    columns = ["first_name", "last_name", "email", "lead_score", "country", "last_activity"]
    return _finish(stmt, lines, ["contacts"], VisualizationType.TABLE, columns)


def _build_contacts(classification: QueryClassification, stmt: _Statement) -> BuiltQuery:
    stmt.where.append(f"c.tenant_id = {stmt.tenant}")
    _apply_filters(stmt, classification.filters, {CONTACTS_ALIAS})
    _apply_timeframe(stmt, classification, CONTACTS_ALIAS)

    if classification.intent is Intent.COUNT:
        lines = ["SELECT COUNT(*) AS total_contacts", "FROM contacts AS c", stmt.where_sql()]
        return _finish(stmt, lines, ["contacts"], VisualizationType.METRICS, ["total_contacts"])

    if classification.intent in (Intent.SUM, Intent.ANALYZE):
        select = [
            "COUNT(*) AS total_contacts",
            "COUNT(DISTINCT c.country) AS countries",
            "ROUND(AVG(c.budget_max), 2) AS avg_budget_max",
        ]
        lines = ["SELECT", "  " + ",\n  ".join(select), "FROM contacts AS c", stmt.where_sql()]
        columns = ["total_contacts", "countries", "avg_budget_max"]
        return _finish(stmt, lines, ["contacts"], VisualizationType.METRICS, columns)

    lines = [
        "SELECT",
        "  " + ",\n  ".join(f"c.{col}" for col in _CONTACT_COLUMNS),
        "FROM contacts AS c",
        stmt.where_sql(),
        "ORDER BY c.created_at DESC",
        f"LIMIT {int(get_settings().result_limit)}",
    ]
    columns = ["first_name", "last_name", "email", "country", "budget_max"]
    return _finish(stmt, lines, ["contacts"], VisualizationType.TABLE, columns)


def _build_bookings(classification: QueryClassification, stmt: _Statement) -> BuiltQuery:
    join = f"JOIN contacts AS c ON c.id = b.contact_id AND c.tenant_id = {stmt.tenant}"
    stmt.where.append(f"b.tenant_id = {stmt.tenant}")
    _apply_filters(stmt, classification.filters, {CONTACTS_ALIAS, BOOKINGS_ALIAS})
    _apply_timeframe(stmt, classification, BOOKINGS_ALIAS)
    tables = ["bookings", "contacts"]

    if classification.intent is Intent.COUNT:
        lines = ["SELECT COUNT(*) AS total_bookings", "FROM bookings AS b", join, stmt.where_sql()]
        return _finish(stmt, lines, tables, VisualizationType.METRICS, ["total_bookings"])

    if classification.intent in (Intent.SUM, Intent.ANALYZE):
        select = [
            "COUNT(*) AS total_bookings",
            "SUM(b.total_amount) AS total_amount",
            "ROUND(AVG(b.total_amount), 2) AS avg_booking_value",
        ]
        lines = ["SELECT", "  " + ",\n  ".join(select), "FROM bookings AS b", join, stmt.where_sql()]
        columns = ["total_bookings", "total_amount", "avg_booking_value"]
        return _finish(stmt, lines, tables, VisualizationType.METRICS, columns)

    lines = [
        "SELECT",
        "  " + ",\n  ".join(_BOOKING_COLUMNS),
        "FROM bookings AS b",
        join,
        stmt.where_sql(),
        "ORDER BY b.created_at DESC",
        f"LIMIT {int(get_settings().result_limit)}",
    ]
    columns = ["first_name", "last_name", "total_amount", "status", "booking_date"]
    return _finish(stmt, lines, tables, VisualizationType.TABLE, columns)


def _build_revenue(classification: QueryClassification, stmt: _Statement) -> BuiltQuery:
    lines = [
        "SELECT",
        "  SUM(b.total_amount) AS total_revenue,",
        "  COUNT(*) AS booking_count,",
        "  ROUND(AVG(b.total_amount), 2) AS avg_booking_value,",
        "  b.currency",
        "FROM bookings AS b",
    ]
    tables = ["bookings"]
    available = {BOOKINGS_ALIAS}
    if _needs_contacts(classification.filters):
        lines.append(f"JOIN contacts AS c ON c.id = b.contact_id AND c.tenant_id = {stmt.tenant}")
        tables.append("contacts")
        available.add(CONTACTS_ALIAS)

    # Cancelled bookings never count as revenue.
    stmt.where.append(f"b.tenant_id = {stmt.tenant}")
    stmt.where.append("b.status != 'cancelled'")
    _apply_filters(stmt, classification.filters, available)
    _apply_timeframe(stmt, classification, BOOKINGS_ALIAS)

    lines.append(stmt.where_sql())
    lines.append("GROUP BY b.currency")
    lines.append("ORDER BY total_revenue DESC")
    columns = ["total_revenue", "booking_count", "avg_booking_value", "currency"]
    return _finish(stmt, lines, tables, VisualizationType.METRICS, columns)


def _build_analytics(classification: QueryClassification, stmt: _Statement) -> BuiltQuery:
    # Whole-tenant overview: user filters and timeframes are ignored.
    hot = load_pattern_tables().band("hot")
    t = stmt.tenant
    lines = [
        "SELECT",
        f"  (SELECT COUNT(*) FROM contacts WHERE tenant_id = {t}) AS total_contacts,",
        f"  (SELECT COUNT(*) FROM bookings WHERE tenant_id = {t}) AS total_bookings,",
        f"  (SELECT COALESCE(SUM(total_amount), 0) FROM bookings WHERE tenant_id = {t}"
        " AND status != 'cancelled') AS total_revenue,",
        f"  (SELECT COUNT(*) FROM contacts WHERE tenant_id = {t}"
        f" AND lead_score BETWEEN {hot.low} AND {hot.high}) AS hot_leads",
    ]
    columns = ["total_contacts", "total_bookings", "total_revenue", "hot_leads"]
    return _finish(stmt, lines, ["contacts", "bookings"], VisualizationType.METRICS, columns)


_TEMPLATES = {
    QueryDomain.LEADS: _build_leads,
    QueryDomain.CONTACTS: _build_contacts,
    QueryDomain.BOOKINGS: _build_bookings,
    QueryDomain.REVENUE: _build_revenue,
    QueryDomain.ANALYTICS: _build_analytics,
}


# ── Public API ───────────────────────────────────────────

def build(classification: QueryClassification, tenant_id: str) -> BuiltQuery:
    """Compile *classification* into a parameterized, tenant-scoped query.

    Raises
    ------
    UnsupportedDomainError
        When the classification has no template (``unknown`` domain).
    ValueError
        When a filter references a column outside the allow-list.
    """
    template = _TEMPLATES.get(classification.domain)
    if template is None:
        raise UnsupportedDomainError(classification.domain.value)

    query = template(classification, _Statement(tenant_id))
    logger.info(
        "Built SQL for %s (%d params, tables=%s):\n%s",
        classification.interpreted_query, len(query.params), query.tables, query.sql,
    )
    return query
