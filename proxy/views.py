import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .services.ai.router import AIRouter
from .services.ai.schemas import AIRequest, OperationType, error_payload
from .services.base import (
    InvalidRequest,
    NetworkError,
    QuotaExceededError,
    ServiceNotConfigured,
    UpstreamError,
)
from .services.ratelimit import get_rate_limiter

logger = logging.getLogger(__name__)

DEVICE_ID_HEADER = 'X-Device-ID'
ANONYMOUS_CLIENT = 'anonymous'
DEFAULT_RATE_LIMIT_RPM = 30

PARSE_SYSTEM_PROMPT = """You are an expert at parsing workout programs from text.
Extract ALL workouts from the program - every day and every week.

CRITICAL RULES:
1. Return ONLY raw JSON - NO markdown code fences, NO backticks, NO explanation text
2. Return an object with "programName" and "workouts" array containing ALL workout days
3. The response must start with { and end with }
4. Include EVERY workout day from the program

Use this exact structure:
{
    "programName": "Program Name",
    "programDescription": "Brief description of the overall program",
    "difficulty": "Beginner|Intermediate|Advanced",
    "workouts": [
        {
            "name": "Week 1 Day 1 - Chest & Triceps",
            "description": "Brief description",
            "estimatedDuration": 45,
            "exercises": [
                {"name": "Exercise Name", "sets": 3, "reps": "10", "weight": "135 lbs", "restSeconds": 60}
            ]
        },
        {
            "name": "Week 1 Day 2 - Back & Biceps",
            "description": "Brief description",
            "estimatedDuration": 45,
            "exercises": [...]
        }
    ]
}
Keep exercise names simple and standardized (e.g., "Bench Press", "Squat", "Deadlift").
If weight is not mentioned, omit it. Include ALL days from ALL weeks."""

# Exception class -> (HTTP status, error code). Checked in order.
_ERROR_STATUS = (
    (InvalidRequest, 400, 'INVALID_REQUEST'),
    (QuotaExceededError, 429, 'QUOTA_EXCEEDED'),
    (ServiceNotConfigured, 500, 'CONFIGURATION_ERROR'),
    (UpstreamError, 502, 'UPSTREAM_ERROR'),
    (NetworkError, 503, 'NETWORK_ERROR'),
)


def error_response(code: str, message: str, status: int) -> JsonResponse:
    return JsonResponse(error_payload(code, message), status=status)


def exception_response(exc: Exception) -> JsonResponse:
    """Map *exc* onto the JSON error envelope."""
    for exc_class, status, code in _ERROR_STATUS:
        if isinstance(exc, exc_class):
            if status >= 500:
                logger.error('%s: %s', code, exc)
            return error_response(code, str(exc), status)
    logger.exception('Error processing request: %s', exc)
    return error_response('INTERNAL_ERROR', str(exc) or 'Unknown error', 500)


def get_rate_limit() -> int:
    try:
        return int(getattr(settings, 'RATE_LIMIT_RPM', DEFAULT_RATE_LIMIT_RPM))
    except (TypeError, ValueError):
        return DEFAULT_RATE_LIMIT_RPM


@method_decorator(csrf_exempt, name='dispatch')
class ProxyView(View):
    """Base view: POST-only, rate limited by device id, JSON error envelope."""

    def dispatch(self, request, *args, **kwargs):
        if request.method != 'POST':
            return error_response('METHOD_NOT_ALLOWED', 'Only POST requests allowed', 405)

        client_key = request.headers.get(DEVICE_ID_HEADER) or ANONYMOUS_CLIENT
        decision = get_rate_limiter().check(client_key, get_rate_limit())
        if not decision.allowed:
            return error_response(
                'RATE_LIMITED',
                f'Rate limit exceeded. Try again in {decision.retry_after} seconds.',
                429,
            )

        try:
            return self.handle(request, *args, **kwargs)
        except Exception as exc:
            return exception_response(exc)

    def handle(self, request, *args, **kwargs):
        raise NotImplementedError


class OperationView(ProxyView):
    """Validates an :class:`AIRequest` body and dispatches it to a provider."""

    operation = OperationType.TIP
    default_system_prompt = None
    router_class = AIRouter

    def handle(self, request, *args, **kwargs):
        payload = json.loads(request.body)
        ai_request = AIRequest.from_payload(payload, self.operation)
        if not ai_request.system_prompt and self.default_system_prompt:
            ai_request.system_prompt = self.default_system_prompt

        response = self.router_class().dispatch(ai_request)
        return JsonResponse(response.to_dict())


class HealthView(ProxyView):
    """Liveness check. GET skips the method gate and the rate limiter."""

    def dispatch(self, request, *args, **kwargs):
        if request.method == 'GET':
            return self.handle(request)
        return super().dispatch(request, *args, **kwargs)

    def handle(self, request, *args, **kwargs):
        return JsonResponse({'status': 'ok', 'environment': settings.ENVIRONMENT})


class NotFoundView(ProxyView):
    def handle(self, request, *args, **kwargs):
        return error_response('NOT_FOUND', 'Endpoint not found', 404)
