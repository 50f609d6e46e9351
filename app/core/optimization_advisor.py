"""Optimization advice from the language model, with a degraded fallback."""
import json
from typing import Sequence

from app.core.errors import ParseError, ProviderError
from app.core.llm_client import LanguageModelClient
from app.core.models import ExplainRow, IndexDescriptor, OptimizationResponse, TableSchema
from app.core.response_parser import describe_payload, parse_model
from app.prompts import render_prompt
from app.smart_logger import SmartLogger

FALLBACK_REASONING = "optimization unavailable"
FALLBACK_KEY_ISSUES = ["optimization service unavailable"]
FALLBACK_IMPROVEMENT = "unknown"

_INDEX_INSTRUCTIONS_ALLOWED = """4. Recommend new indexes that would improve this query
5. Estimate the performance improvement"""

_INDEX_INSTRUCTIONS_FORBIDDEN = """4. DO NOT recommend creating new indexes (production safety mode)
5. Focus on query rewriting techniques only
6. Estimate the performance improvement"""

_RESPONSE_FIELDS = [
    '  "optimizedQuery": "the optimized SQL query"',
    '  "reasoning": "detailed explanation of optimizations"',
    '  "keyIssues": ["issue 1", "issue 2"]',
    '  "estimatedImprovement": "e.g., 50% faster, reduced from full scan to index lookup"',
]

_INDEX_RECOMMENDATIONS_FIELD = """  "indexRecommendations": [
    {
      "tableName": "table_name",
      "indexDefinition": "CREATE INDEX idx_name ON table_name(column1, column2)",
      "reasoning": "why this index helps"
    }
  ]"""


def _response_format(include_index_recommendations: bool) -> str:
    fields = list(_RESPONSE_FIELDS)
    if include_index_recommendations:
        fields.append(_INDEX_RECOMMENDATIONS_FIELD)
    return "{\n" + ",\n".join(fields) + "\n}"


def _to_json(items: Sequence) -> str:
    return json.dumps([item.model_dump(mode="json", by_alias=True) for item in items], indent=2)


def _format_schemas(schemas: Sequence[TableSchema]) -> str:
    return "\n\n".join(f"Table: {schema.table_name}\n{schema.create_statement}" for schema in schemas)


def fallback_response(statement: str) -> OptimizationResponse:
    return OptimizationResponse(
        optimized_query=statement,
        reasoning=FALLBACK_REASONING,
        key_issues=list(FALLBACK_KEY_ISSUES),
        estimated_improvement=FALLBACK_IMPROVEMENT,
    )


class OptimizationAdvisor:
    _PROMPT_FILE = "optimization_prompt.md"

    def __init__(self, llm: LanguageModelClient):
        self.llm = llm

    def build_prompt(
        self,
        statement: str,
        explain_rows: Sequence[ExplainRow],
        schemas: Sequence[TableSchema],
        indexes: Sequence[IndexDescriptor],
        include_index_recommendations: bool,
    ) -> str:
        index_instructions = (
            _INDEX_INSTRUCTIONS_ALLOWED if include_index_recommendations else _INDEX_INSTRUCTIONS_FORBIDDEN
        )
        return render_prompt(
            self._PROMPT_FILE,
            query=statement,
            explain_plan=_to_json(explain_rows),
            table_schemas=_format_schemas(schemas),
            indexes=_to_json(indexes),
            index_instructions=index_instructions,
            response_format=_response_format(include_index_recommendations),
        )

    async def advise(
        self,
        statement: str,
        explain_rows: Sequence[ExplainRow],
        schemas: Sequence[TableSchema],
        indexes: Sequence[IndexDescriptor],
        include_index_recommendations: bool = False,
    ) -> OptimizationResponse:
        """Never raises; model or parse failures produce ``fallback_response``."""
        prompt = self.build_prompt(statement, explain_rows, schemas, indexes, include_index_recommendations)
        try:
            reply = await self.llm.complete(prompt)
            response = parse_model(reply, OptimizationResponse)
        except (ProviderError, ParseError) as exc:
            SmartLogger.log(
                "ERROR",
                "optimizer.advisor.fallback",
                category="optimizer.advisor",
                params={
                    "error_type": type(exc).__name__,
                    "error": describe_payload(exc),
                    "statement": statement,
                },
            )
            return fallback_response(statement)

        if not include_index_recommendations and response.index_recommendations is not None:
            response = response.model_copy(update={"index_recommendations": None})

        SmartLogger.log(
            "INFO",
            "optimizer.advisor.done",
            category="optimizer.advisor",
            params={
                "key_issues": len(response.key_issues or []),
                "index_recommendations": len(response.index_recommendations or []),
                "estimated_improvement": response.estimated_improvement,
            },
        )
        return response
