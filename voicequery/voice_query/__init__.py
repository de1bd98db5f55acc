"""Voice to SQL: remote generation and execution on a secondary connection."""

from .executor import BoundedPipelineExecutor
from .host import QueryHost, run_query
from .http_client import TextToSqlClient, build_request_body, parse_sql_response

__all__ = [
    "BoundedPipelineExecutor",
    "QueryHost",
    "run_query",
    "TextToSqlClient",
    "build_request_body",
    "parse_sql_response",
]
