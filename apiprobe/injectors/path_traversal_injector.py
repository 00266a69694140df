from apiprobe.injectors.base import Attempt, FieldInjector
from apiprobe.transport import HttpResponse

# Content only a real system file would return
SENTINELS = ("root:", "[boot loader]")


class PathTraversalInjector(FieldInjector):
    name = "path_traversal"
    kind = "path_traversal"
    description = "Directory traversal sequences in file/path/filename"
    severity = "critical"

    payloads = (
        "../../../etc/passwd",
        "..\\..\\..\\windows\\system32\\config\\sam",
        "....//....//....//etc/passwd",
    )
    fields = ("file", "path", "filename")

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        return any(s in resp.text for s in SENTINELS)
