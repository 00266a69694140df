import html

from apiprobe.injectors.base import Attempt, FieldInjector
from apiprobe.transport import HttpResponse


class XSSInjector(FieldInjector):
    name = "xss"
    kind = "xss"
    description = "Reflected script payloads in input/name/content"
    severity = "high"

    payloads = (
        "<script>alert(1)</script>",
        "<img src=x onerror=alert(1)>",
        "javascript:alert(1)",
        "<svg onload=alert(1)>",
    )
    fields = ("input", "name", "content")

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        payload = attempt.label
        if payload not in resp.text:
            return False
        escaped = html.escape(payload, quote=False)
        # A payload with nothing to escape is judged on reflection alone
        return escaped == payload or escaped not in resp.text
