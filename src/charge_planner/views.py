from __future__ import annotations

import json
from typing import Any

from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from pydantic import ValidationError

from charge_planner.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    NoRouteFoundError,
)
from charge_planner.logger import logger
from charge_planner.schemas import ChargePlanRequest
from charge_planner.services.planner import ChargePlannerService

_planner_service: ChargePlannerService | None = None


def get_charge_planner() -> ChargePlannerService:
    global _planner_service
    if _planner_service is None:
        _planner_service = ChargePlannerService()
    return _planner_service


@require_GET
def health_view(_: HttpRequest) -> HttpResponse:
    return JsonResponse(
        {
            "status": "ok",
            "providers": {
                "directions": bool(settings.GOOGLE_ROUTES_API_KEY),
                "stations": bool(settings.CHARGEPOINT_MAP_API_URL),
            },
        }
    )


@csrf_exempt
@require_POST
def charge_plan_view(request: HttpRequest) -> HttpResponse:
    payload = _parse_json_payload(request)
    if isinstance(payload, JsonResponse):
        return payload

    try:
        plan_request = ChargePlanRequest.model_validate(payload)
    except ValidationError as exc:
        return JsonResponse(
            {
                "error": {
                    "code": "validation_error",
                    "message": "Invalid request payload",
                    "details": exc.errors(),
                }
            },
            status=400,
        )

    planner = get_charge_planner()
    try:
        response = planner.plan(plan_request)
    except InvalidInputError as exc:
        return _error_response("invalid_input", str(exc), status=400)
    except NoRouteFoundError as exc:
        logger.warning("Charge plan failed: {}", exc)
        return _error_response("no_route", str(exc), status=502)
    except ExternalServiceError as exc:
        logger.warning("Charge plan failed: {}", exc)
        return _error_response("upstream_error", str(exc), status=502)

    return JsonResponse(response.model_dump(mode="json"), status=200)


def _parse_json_payload(request: HttpRequest) -> dict[str, Any] | JsonResponse:
    if not request.body:
        return {}

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError:
        return _error_response("invalid_json", "Request body must be valid JSON", status=400)

    if not isinstance(payload, dict):
        return _error_response("invalid_json", "JSON body must be an object", status=400)

    return payload


def _error_response(code: str, message: str, status: int) -> JsonResponse:
    return JsonResponse({"error": {"code": code, "message": message}}, status=status)
