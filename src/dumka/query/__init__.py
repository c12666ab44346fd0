"""Natural-language questions answered from the history database."""

from .executor import NO_RESULTS, QueryExecutor, is_read_only, render_rows
from .translator import QueryTranslator, strip_code_fence

__all__ = [
    "NO_RESULTS",
    "QueryExecutor",
    "QueryTranslator",
    "is_read_only",
    "render_rows",
    "strip_code_fence",
]
