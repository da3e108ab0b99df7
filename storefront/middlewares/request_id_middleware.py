import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from storefront.common.constants import REQUEST_ID_HEADER, request_id_ctx


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Accepts an upstream request id or mints one, and echoes it on the response."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = rid
        reset_token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(reset_token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
