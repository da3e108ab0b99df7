import contextvars
from typing import Optional

request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

# extras masked before a record is written
REDACT_FIELDS = ("verification_token", "remark1", "customer_phone", "customer_email")
