from apiprobe.injectors.base import Attempt, BaseInjector
from apiprobe.models.route import RouteModel
from apiprobe.transport import HttpResponse


class UnauthorizedInjector(BaseInjector):
    name = "unauthorized"
    kind = "unauthorized"
    description = "Protected route called with no credential"
    severity = "critical"
    keep_body = False

    def applies_to(self, route: RouteModel) -> bool:
        return route.auth_required

    def generate_payloads(self, route: RouteModel) -> list[Attempt]:
        return [Attempt(label="No authentication token", with_credentials=False)]

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        return resp.status < 400
