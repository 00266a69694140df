"""Oversized and negative-value bodies. Only sent to routes that take a body."""

import json

from apiprobe.config import LARGE_PAYLOAD_SIZE
from apiprobe.injectors.base import Attempt, BaseInjector
from apiprobe.models.route import RouteModel
from apiprobe.transport import HttpResponse

NEGATIVE_VALUES = {"id": -1, "price": -100, "quantity": -999}


class LargePayloadInjector(BaseInjector):
    name = "large_payload"
    kind = "large_payload"
    description = "One oversized string field"
    severity = "medium"
    body_only = True
    keep_body = False

    def generate_payloads(self, route: RouteModel) -> list[Attempt]:
        return [Attempt(
            label=f"Large payload ({LARGE_PAYLOAD_SIZE // 1000}KB)",
            data={"data": "x" * LARGE_PAYLOAD_SIZE},
        )]

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        # 413 counts too: the route did not handle the size itself
        return resp.status in (500, 413)


class NegativeValueInjector(BaseInjector):
    name = "negative_value"
    kind = "negative_value"
    description = "Negative id/price/quantity accepted silently"
    severity = "medium"
    body_only = True
    keep_body = False

    def generate_payloads(self, route: RouteModel) -> list[Attempt]:
        return [Attempt(label=json.dumps(NEGATIVE_VALUES), data=dict(NEGATIVE_VALUES))]

    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        return resp.status < 400 and "error" not in resp.text
