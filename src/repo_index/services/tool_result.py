"""Structured envelope around rendered query output."""
from __future__ import annotations

import time
from typing import Callable

from src.shared.models.scan import ToolResult


def count_table_rows(markdown: str) -> int:
    """Count data rows across every markdown table in *markdown*.

    Each table contributes its ``|``-prefixed lines minus the separator and
    one header line.
    """
    count = 0
    in_table = False
    for raw in markdown.splitlines():
        line = raw.strip()
        if line.startswith("|"):
            if line.startswith("| -") or line.startswith("|-"):
                continue
            if not in_table:
                in_table = True
                continue
            count += 1
        else:
            in_table = False
    return count


def build_tool_result(markdown: str, query_ms: int, limit: int | None = None) -> ToolResult:
    """Wrap *markdown* in a :class:`ToolResult`.

    ``truncated`` is set when the row count reached *limit*, meaning the
    query hit its row cap and more matches may exist.
    """
    result_count = count_table_rows(markdown)
    return ToolResult(
        content=markdown,
        result_count=result_count,
        truncated=limit is not None and result_count >= limit,
        query_ms=query_ms,
    )


def timed_tool_result(compute: Callable[[], str], limit: int | None = None) -> ToolResult:
    """Run *compute* and wrap its markdown together with the elapsed milliseconds."""
    started = time.perf_counter()
    markdown = compute()
    query_ms = int((time.perf_counter() - started) * 1000)
    return build_tool_result(markdown, query_ms, limit)
