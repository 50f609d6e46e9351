"""Deterministic read-only guard for user statements.

The model-backed classifier has the final say only when it rejects. A verdict
that claims a statement is safe must also pass this guard.
"""
import re
from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError


# Statement-changing keywords (DML/DDL/DCL)
FORBIDDEN_KEYWORDS = {
    "INSERT", "UPDATE", "DELETE", "ALTER", "DROP", "TRUNCATE",
    "CREATE", "GRANT", "REVOKE", "REPLACE", "MERGE", "RENAME",
    "CALL", "EXEC", "EXECUTE", "LOAD", "HANDLER", "LOCK", "UNLOCK",
    "SET", "KILL", "SHUTDOWN", "PREPARE", "DEALLOCATE", "DO",
}

FORBIDDEN_NODES = (
    exp.Insert, exp.Update, exp.Delete, exp.Drop,
    exp.Create, exp.Alter, exp.Merge,
)

READ_ONLY_LEADING = {"SELECT", "WITH", "EXPLAIN", "DESCRIBE", "DESC", "SHOW"}

# EXPLAIN modifiers that may precede the explained statement
_EXPLAIN_OPTIONS = re.compile(
    r"^(?:(?:ANALYZE|EXTENDED|PARTITIONS)\s+|FORMAT\s*=\s*\w+\s+)*",
    re.IGNORECASE,
)

DANGEROUS_PATTERNS = [
    (r";\s*\S", "multiple statements"),
    (r"/\*!", "executable comment"),
    (r"\bINTO\s+(?:OUT|DUMP)FILE\b", "file export"),
    (r"\bLOAD_FILE\s*\(", "server file access"),
]

_STRING_LITERAL = re.compile(r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.|\"\")*\"")
_BACKTICK_IDENT = re.compile(r"`(?:[^`]|``)*`")
_LINE_COMMENT = re.compile(r"(?:--\s|#)[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*(?!!).*?\*/", re.DOTALL)
_LEADING_WORD = re.compile(r"\s*\(*\s*([A-Za-z_]+)")
_KEYWORD_SCAN = re.compile(
    r"\b(" + "|".join(sorted(FORBIDDEN_KEYWORDS - {"REPLACE", "SET", "DO", "LOCK"})) + r")\b"
    r"|\bREPLACE\b(?!\s*\()",
    re.IGNORECASE,
)


class SQLValidationError(Exception):
    """Raised when a statement is not a single read-only statement"""
    pass


def _mask_literals(sql: str) -> str:
    """Blank out string literals and quoted identifiers, then drop comments."""
    masked = _STRING_LITERAL.sub("''", sql)
    masked = _BACKTICK_IDENT.sub("`x`", masked)
    masked = _BLOCK_COMMENT.sub(" ", masked)
    masked = _LINE_COMMENT.sub(" ", masked)
    return masked


def _leading_keyword(sql: str) -> Optional[str]:
    match = _LEADING_WORD.match(sql)
    return match.group(1).upper() if match else None


class SQLGuard:
    """Read-only statement guard (MySQL dialect)"""

    dialect = "mysql"

    def check_read_only(self, sql: str) -> None:
        """
        Raises SQLValidationError unless ``sql`` is a single SELECT / WITH /
        EXPLAIN / DESCRIBE / SHOW statement without statement-changing parts.
        """
        original = (sql or "").strip()
        masked = _mask_literals(original).strip().rstrip(";").strip()
        if not masked:
            raise SQLValidationError("Empty statement")

        self._check_dangerous_patterns(masked)

        leading = _leading_keyword(masked)
        if leading not in READ_ONLY_LEADING:
            raise SQLValidationError(f"Statement type not allowed: {leading or 'unknown'}")

        if leading == "SHOW":
            return

        body = original
        if leading in {"EXPLAIN", "DESCRIBE", "DESC"}:
            body = self._explained_statement(original)
            inner = _leading_keyword(_mask_literals(body)) if body else None
            if inner in FORBIDDEN_KEYWORDS:
                raise SQLValidationError(f"Forbidden explained statement: {inner}")
            if inner not in {"SELECT", "WITH"}:
                # EXPLAIN <table> [column] describes a table
                return

        self._check_statement_tree(body)

    def _explained_statement(self, sql: str) -> str:
        rest = re.sub(r"^\s*(?:EXPLAIN|DESCRIBE|DESC)\b", "", sql, count=1, flags=re.IGNORECASE).strip()
        return _EXPLAIN_OPTIONS.sub("", rest).strip()

    def _check_dangerous_patterns(self, masked_sql: str):
        for pattern, label in DANGEROUS_PATTERNS:
            if re.search(pattern, masked_sql, re.IGNORECASE):
                raise SQLValidationError(f"Dangerous pattern detected: {label}")

    def _check_statement_tree(self, sql: str):
        """Structural check with sqlglot; keyword scan when the parser gives up."""
        try:
            statements = [s for s in sqlglot.parse(sql, read=self.dialect) if s is not None]
        except SqlglotError:
            statements = None

        if statements is None:
            match = _KEYWORD_SCAN.search(_mask_literals(sql))
            if match:
                raise SQLValidationError(f"Forbidden keyword: {match.group(0).upper()}")
            return

        if len(statements) > 1:
            raise SQLValidationError("Dangerous pattern detected: multiple statements")

        for statement in statements:
            node = next(statement.find_all(*FORBIDDEN_NODES), None)
            if node is not None:
                raise SQLValidationError(f"Forbidden operation: {type(node).__name__}")
            if isinstance(statement, exp.Command):
                keyword = str(statement.this or "").upper()
                if keyword in FORBIDDEN_KEYWORDS:
                    raise SQLValidationError(f"Forbidden keyword: {keyword}")
