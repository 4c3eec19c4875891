"""
Deterministic SQL safety checks.

A denylist safety net applied to builder output and to any externally
supplied SQL before execution. The primary defence is that the builder only
emits fixed templates with bound parameters; these checks catch regressions
and ad-hoc statements.

Checks performed:
  1. SQL must not be empty
  2. SQL must be a single read-only statement starting with SELECT (or WITH)
  3. No multi-statement text (';' followed by anything but whitespace)
  4. No UNION (result-set splicing)
  5. No DML / DDL / privilege keywords (DROP, DELETE, UPDATE, INSERT, ALTER,
     TRUNCATE, CREATE, GRANT, REVOKE, MERGE, EXEC, EXECUTE, CALL, COPY)
  6. No SQL comments (--, /*)
"""
from __future__ import annotations

import re

from src.nlquery.errors import SecurityRejectedError
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|DELETE|UPDATE|INSERT|ALTER|TRUNCATE|CREATE|GRANT|REVOKE|"
    r"MERGE|EXECUTE|EXEC|CALL|COPY)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_UNION = re.compile(r"\bUNION\b", re.IGNORECASE)

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")

_READ_ONLY_START = re.compile(r"^(?:SELECT|WITH)\b", re.IGNORECASE)


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    sql_stripped = (sql or "").strip()
    if not sql_stripped:
        return ["SQL is empty."]

    errors: list[str] = []

    # ── 1. Must start with SELECT (or WITH … SELECT) ─
    if not _READ_ONLY_START.match(sql_stripped):
        errors.append("SQL must be a SELECT statement.")

    # ── 2. No multi-statement ────────────────────────
    if _MULTI_STMT.search(sql_stripped):
        errors.append("Multi-statement SQL is not allowed (found ';' followed by another statement).")

    # ── 3. No UNION ──────────────────────────────────
    if _UNION.search(sql_stripped):
        errors.append("UNION is not allowed.")

    # ── 4. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 5. No SQL comments ───────────────────────────
    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    if errors:
        # Never log the SQL text here.
        logger.warning("SQL safety violations: %s", errors)
    return errors


def validate(sql: str) -> bool:
    """True when *sql* passes every safety check."""
    return not check_sql_safety(sql)


def ensure_safe(sql: str) -> None:
    """Raise SecurityRejectedError when *sql* fails any safety check."""
    violations = check_sql_safety(sql)
    if violations:
        raise SecurityRejectedError(violations)
