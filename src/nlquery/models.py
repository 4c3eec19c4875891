"""
Value types passed between the classifier and the SQL builder.

QueryClassification is the structured interpretation of a free-text
question; BuiltQuery is the parameterized statement compiled from it.
Both are immutable once constructed.
"""
from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QueryDomain(str, Enum):
    LEADS = "leads"
    BOOKINGS = "bookings"
    REVENUE = "revenue"
    CONTACTS = "contacts"
    ANALYTICS = "analytics"
    UNKNOWN = "unknown"


class Intent(str, Enum):
    LIST = "list"
    COUNT = "count"
    SUM = "sum"
    ANALYZE = "analyze"


class Aggregation(str, Enum):
    COUNT = "count"
    SUM = "sum"


class FilterOperator(str, Enum):
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"
    LIKE = "like"


class VisualizationType(str, Enum):
    TABLE = "table"
    CHART = "chart"
    METRICS = "metrics"
    LIST = "list"


Scalar = Union[int, float, str]


class Filter(BaseModel):
    """A typed WHERE condition derived from an extracted entity."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Logical column name, e.g. 'lead_score'")
    operator: FilterOperator
    value: Union[Scalar, list[Scalar]]

    @model_validator(mode="after")
    def _check_arity(self) -> "Filter":
        if self.operator is FilterOperator.BETWEEN:
            if not isinstance(self.value, list) or len(self.value) != 2:
                raise ValueError("'between' filters need exactly two values")
        elif isinstance(self.value, list):
            raise ValueError(f"'{self.operator.value}' filters take a single value")
        return self


class RelativeTimeframe(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["relative"] = "relative"
    period: Literal["day", "week", "month"]
    count: int = Field(..., ge=1)
    start: datetime
    end: datetime


class AbsoluteTimeframe(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["absolute"] = "absolute"
    start: datetime
    end: datetime


Timeframe = Annotated[
    Union[RelativeTimeframe, AbsoluteTimeframe],
    Field(discriminator="type"),
]


class QueryClassification(BaseModel):
    """Parsed representation of a natural-language CRM question."""

    model_config = ConfigDict(frozen=True)

    domain: QueryDomain
    intent: Intent = Intent.LIST
    entities: dict[str, Any] = Field(default_factory=dict)
    filters: list[Filter] = Field(default_factory=list)
    timeframe: Optional[Timeframe] = None
    aggregation: Aggregation | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    language: Literal["de", "en"] = "de"

    @property
    def interpreted_query(self) -> str:
        return f"{self.intent.value} {self.domain.value}"

    @property
    def is_ambiguous(self) -> bool:
        return self.confidence < 0.5


_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


class BuiltQuery(BaseModel):
    """Parameterized SQL plus the hints a caller needs to render the result."""

    model_config = ConfigDict(frozen=True)

    sql: str
    params: list[Any] = Field(default_factory=list)
    tables: list[str] = Field(default_factory=list)
    visualization_type: VisualizationType
    expected_columns: list[str] = Field(default_factory=list)

    @property
    def placeholder_count(self) -> int:
        """Number of distinct ``$n`` placeholders referenced by ``sql``."""
        return len({int(n) for n in _PLACEHOLDER_RE.findall(self.sql)})

    @model_validator(mode="after")
    def _check_placeholders(self) -> "BuiltQuery":
        indices = {int(n) for n in _PLACEHOLDER_RE.findall(self.sql)}
        if indices != set(range(1, len(self.params) + 1)):
            raise ValueError(
                f"SQL references placeholders {sorted(indices)} "
                f"but {len(self.params)} params were bound"
            )
        return self
