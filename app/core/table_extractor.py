"""Referenced-table extraction: language model first, keyword scan as fallback."""
import re
from typing import Iterable, List

from app.core.errors import ParseError, ProviderError
from app.core.llm_client import LanguageModelClient
from app.core.response_parser import describe_payload, parse_string_list
from app.prompts import render_prompt
from app.smart_logger import SmartLogger

_TABLE_AFTER_KEYWORD = re.compile(r"(?:FROM|JOIN)\s+[`\"]?(\w+)[`\"]?", re.IGNORECASE)


def _unique_in_order(names: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for name in names:
        cleaned = (name or "").strip().strip("`\"'").strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def scan_table_names(statement: str) -> List[str]:
    """Identifiers that directly follow FROM / JOIN, first occurrence order."""
    return _unique_in_order(_TABLE_AFTER_KEYWORD.findall(statement or ""))


class TableNameExtractor:
    _PROMPT_FILE = "table_extract_prompt.md"

    def __init__(self, llm: LanguageModelClient):
        self.llm = llm

    async def extract(self, statement: str) -> List[str]:
        """Never raises. An empty list means no table could be found."""
        try:
            reply = await self.llm.complete(render_prompt(self._PROMPT_FILE, query=statement))
            names = _unique_in_order(parse_string_list(reply))
        except (ProviderError, ParseError) as exc:
            names = scan_table_names(statement)
            SmartLogger.log(
                "WARNING",
                "optimizer.tables.fallback_scan",
                category="optimizer.tables",
                params={
                    "error_type": type(exc).__name__,
                    "error": describe_payload(exc),
                    "tables": names,
                },
            )
            return names

        SmartLogger.log(
            "DEBUG",
            "optimizer.tables.extracted",
            category="optimizer.tables",
            params={"tables": names},
        )
        return names
