"""
Custom middleware for API request logging.
"""
import json
import logging
import time

from utils.mongo import log_api_request

logger = logging.getLogger(__name__)


class APILoggingMiddleware:
    """
    Middleware to log scheduling and fleet API requests to MongoDB.
    Bodies of write requests are kept so rejected proposals can be audited.
    """

    # Endpoints to log
    LOGGED_ENDPOINTS = ['/api/schedules/', '/api/fleet/']
    WRITE_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        should_log = any(
            request.path.startswith(endpoint.rstrip('/'))
            for endpoint in self.LOGGED_ENDPOINTS
        )

        if not should_log:
            return self.get_response(request)

        start_time = time.time()
        # Read the body before the view does, so it stays available here.
        request_params = self._request_params(request)

        response = self.get_response(request)

        execution_time_ms = (time.time() - start_time) * 1000

        user_id = None
        depot_id = None
        if hasattr(request, 'user') and request.user.is_authenticated:
            user_id = request.user.id
            depot_id = getattr(request.user, 'depot_id', None)

        conflicts = None
        data = getattr(response, 'data', None)
        if response.status_code == 409 and isinstance(data, dict):
            conflicts = data.get('conflicts')

        try:
            log_api_request(
                endpoint=request.path,
                method=request.method,
                user_id=user_id,
                depot_id=depot_id,
                request_params=request_params,
                response_status=response.status_code,
                execution_time_ms=round(execution_time_ms, 2),
                conflicts=conflicts
            )
        except Exception as e:
            # Don't let logging errors affect the response
            logger.error("Error logging API request: %s", e)

        return response

    def _request_params(self, request):
        if request.method in self.WRITE_METHODS:
            if not request.body:
                return {}
            try:
                body = json.loads(request.body)
            except (ValueError, UnicodeDecodeError):
                return {}
            return body if isinstance(body, dict) else {'body': body}

        # Flatten single-value lists
        return {
            k: v[0] if isinstance(v, list) and len(v) == 1 else v
            for k, v in request.GET.lists()
        }
