import asyncio
from typing import Any, Dict, Optional
import httpx
from pydantic import BaseModel
from storefront import logger
from storefront.common.custom_exceptions import GatewayError
from storefront.config.settings import config_settings

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError, httpx.NetworkError)
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.5


class GatewayOrderStatus(BaseModel):
    status: Optional[str] = None       # SUCCESS / FAILURE / PENDING
    txn_status: Optional[str] = None   # COMPLETED / FAILURE
    utr: Optional[str] = None
    date: Optional[str] = None
    remark1: Optional[str] = None
    order_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == "SUCCESS" or self.txn_status == "COMPLETED"

    @property
    def is_failure(self) -> bool:
        return not self.is_success and (self.status == "FAILURE" or self.txn_status == "FAILURE")


def retry_gateway(func, max_retries: int = DEFAULT_RETRIES, backoff_base: float = DEFAULT_BACKOFF_BASE):
    """Retry transient network errors and 5xx answers with exponential backoff.

    4xx and anything unexpected surface at once as GatewayError.
    """
    async def retry_wrapper(*args, **kwargs):
        last_exc = None
        for attempt_idx in range(1, max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except TRANSIENT_EXCEPTIONS as ex:
                last_exc = ex
            except httpx.HTTPStatusError as ex:
                status_code = ex.response.status_code if ex.response is not None else None
                if status_code and 500 <= status_code < 600:
                    last_exc = ex
                else:
                    raise GatewayError("Payment gateway rejected the request",
                                       details={"http_status": status_code}) from ex
            logger.warning("gateway.retrying", extra={"attempt": attempt_idx, "error": repr(last_exc)})
            if attempt_idx < max_retries:
                await asyncio.sleep(min(backoff_base * (2 ** (attempt_idx - 1)), 8.0))
        raise GatewayError("Payment gateway unreachable", details={"attempts": max_retries}) from last_exc

    return retry_wrapper


def _is_false(flag) -> bool:
    return flag is False or (isinstance(flag, str) and flag.lower() == "false")


class CloverGateway:
    """Form-encoded client for the Clover UPI QR gateway."""

    def __init__(self, base_url: str, create_order_path: str, status_path: str, api_token: str,
                 redirect_url: str, http_client: httpx.AsyncClient,
                 max_retries: int = DEFAULT_RETRIES, backoff_base: float = DEFAULT_BACKOFF_BASE):
        self.base_url = base_url.rstrip("/")
        self.create_order_path = create_order_path
        self.status_path = status_path
        self.api_token = api_token
        self.redirect_url = redirect_url
        self.http_client = http_client
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def _post_form(self, path: str, form: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self.http_client.post(f"{self.base_url}{path}", data=form)
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as ex:
            raise GatewayError("Payment gateway returned a non-JSON body") from ex

    async def create_order(self, customer_phone: str, amount: int, order_id: str, callback_token: str) -> str:
        form = {
            "customer_mobile": customer_phone,
            "user_token": self.api_token,
            "amount": str(amount),
            "order_id": order_id,
            "redirect_url": f"{self.redirect_url}{order_id}",
            "remark1": callback_token,
        }
        call = retry_gateway(self._post_form, self.max_retries, self.backoff_base)
        data = await call(self.create_order_path, form)

        result = data.get("result") or {}
        if _is_false(data.get("status")) or not result.get("payment_url"):
            logger.error("gateway.create_order.rejected", extra={"order_number": order_id,
                                                                 "gateway_message": data.get("message")})
            raise GatewayError(data.get("message") or "Failed to create payment order",
                               details={"order_number": order_id})

        logger.info("gateway.create_order.ok", extra={"order_number": order_id})
        return result["payment_url"]

    async def check_order_status(self, order_id: str) -> Optional[GatewayOrderStatus]:
        form = {"user_token": self.api_token, "order_id": order_id}
        call = retry_gateway(self._post_form, self.max_retries, self.backoff_base)
        data = await call(self.status_path, form)

        result = data.get("result")
        if not result:
            return None
        return GatewayOrderStatus(
            status=result.get("status"),
            txn_status=result.get("txnStatus"),
            utr=result.get("utr"),
            date=result.get("date"),
            remark1=result.get("remark1"),
            order_id=result.get("orderId"),
        )


def build_gateway(http_client: httpx.AsyncClient) -> CloverGateway:
    return CloverGateway(
        base_url=config_settings.CLOVER_BASE_URL,
        create_order_path=config_settings.CLOVER_CREATE_ORDER_PATH,
        status_path=config_settings.CLOVER_STATUS_PATH,
        api_token=config_settings.CLOVER_API_TOKEN,
        redirect_url=config_settings.PAYMENT_REDIRECT_URL,
        http_client=http_client,
    )
