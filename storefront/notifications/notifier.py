from typing import Any, Dict
from storefront import logger


class Notifier:
    """Delivery channel for customer notifications (email, sms, ...)."""

    async def order_confirmed(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def order_unplaced(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):

    async def order_confirmed(self, data: Dict[str, Any]) -> None:
        logger.info("notify.order_confirmed", extra={"order_number": data.get("order_number"),
                                                      "customer_email": data.get("customer_email")})

    async def order_unplaced(self, data: Dict[str, Any]) -> None:
        logger.info("notify.order_unplaced", extra={"order_number": data.get("order_number"),
                                                     "customer_email": data.get("customer_email")})
