import contextvars
import secrets

current_request_id = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.META.get("HTTP_X_REQUEST_ID") or secrets.token_hex(8)
        request.request_id = rid
        token = current_request_id.set(rid)

        try:
            response = self.get_response(request)
        finally:
            current_request_id.reset(token)

        response["X-Request-ID"] = rid
        return response
