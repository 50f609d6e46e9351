"""Value objects passed between the pipeline components.

Field aliases follow the wire format the UI consumes: camelCase for our own
entities, MySQL's column names for EXPLAIN rows. The same JSON form is what
gets stored in the result cache.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class QueryType(str, Enum):
    EXPLAIN = "EXPLAIN"
    SHOW_CREATE_TABLE = "SHOW_CREATE_TABLE"
    SHOW_INDEX = "SHOW_INDEX"
    SELECT = "SELECT"
    UNSAFE = "UNSAFE"


class SafetyVerdict(_CamelModel):
    is_safe: bool
    query_type: QueryType
    reason: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> "SafetyVerdict":
        if self.is_safe and self.query_type == QueryType.UNSAFE:
            raise ValueError("a safe verdict cannot have queryType UNSAFE")
        return self

    @classmethod
    def rejected(cls, reason: str) -> "SafetyVerdict":
        return cls(is_safe=False, query_type=QueryType.UNSAFE, reason=reason)


class ColumnDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    type: str
    nullable: bool
    key_role: str = Field("", alias="key")
    default_value: Optional[str] = Field(None, alias="default")
    extra: str = ""


class TableSchema(_CamelModel):
    table_name: str
    create_statement: str
    columns: List[ColumnDescriptor] = Field(default_factory=list)


class IndexDescriptor(_CamelModel):
    table_name: str
    index_name: str
    column_name: Optional[str] = None
    index_type: str = ""
    cardinality: int = Field(0, ge=0)
    non_unique: int = Field(0, ge=0, le=1)


class ExplainRow(BaseModel):
    """One row of MySQL's tabular EXPLAIN output."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = 0
    select_type: str = ""
    table: str = ""
    access_type: str = Field("", alias="type")
    possible_keys: Optional[str] = None
    key: Optional[str] = None
    key_length: Optional[str] = Field(None, alias="key_len")
    ref: Optional[str] = None
    estimated_rows: int = Field(0, ge=0, alias="rows")
    filtered_percent: float = Field(100.0, alias="filtered")
    extra: str = Field("", alias="Extra")


class IndexRecommendation(_CamelModel):
    table_name: str
    index_definition: str
    reasoning: str


class OptimizationResponse(_CamelModel):
    """Structured reply of the optimization model."""

    optimized_query: str = Field(..., min_length=1)
    reasoning: str = Field(..., min_length=1)
    key_issues: Optional[List[str]] = None
    estimated_improvement: Optional[str] = None
    index_recommendations: Optional[List[IndexRecommendation]] = None


class OptimizationResult(_CamelModel):
    original_query: str
    optimized_query: str
    explain_plan: List[ExplainRow]
    tables: List[TableSchema]
    indexes: List[IndexDescriptor]
    reasoning: str
    key_issues: Optional[List[str]] = None
    estimated_improvement: Optional[str] = None
    index_recommendations: Optional[List[IndexRecommendation]] = None
    cache_hit: bool

    def to_response(self) -> Dict[str, Any]:
        """JSON-ready dict; optional top-level fields that are unset are omitted."""
        data = self.model_dump(mode="json", by_alias=True)
        for field_name in ("keyIssues", "estimatedImprovement", "indexRecommendations"):
            if data.get(field_name) is None:
                data.pop(field_name, None)
        return data


class HealthStatus(_CamelModel):
    database_reachable: bool
    cache_reachable: bool
    model_reachable: bool

    @property
    def healthy(self) -> bool:
        return self.database_reachable and self.cache_reachable and self.model_reachable
