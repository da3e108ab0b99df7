from pydantic import BaseModel
from typing import Dict, Iterable, Optional, Tuple
from storefront.config.settings import config_settings
from storefront.inventory.constants import StockAction, StockStatus
from storefront.inventory.repository import read_variant_stocks


def available_stock(durable: int, reserved: int) -> int:
    return max(0, int(durable) - int(reserved))


class Classification(BaseModel):
    status: StockStatus
    action: StockAction
    available: int
    message: Optional[str] = None


def classify(requested: int, available: int, low_stock_threshold: int = 10) -> Classification:
    if available <= 0:
        return Classification(status=StockStatus.OUT_OF_STOCK, action=StockAction.REMOVE, available=0,
                              message="Out of stock")
    if requested > available:
        return Classification(status=StockStatus.QUANTITY_EXCEEDED, action=StockAction.REDUCE, available=available,
                              message=f"Please reduce quantity to {available}.")
    if available < low_stock_threshold:
        return Classification(status=StockStatus.LOW_STOCK_WARNING, action=StockAction.PROCEED, available=available,
                              message=f"Hurry up! Only {available} left.")
    return Classification(status=StockStatus.IN_STOCK, action=StockAction.PROCEED, available=available)


class VariantAvailability(BaseModel):
    stock: int
    reserved: int
    available: int


class AvailabilityCalculator:
    """Durable stock minus live soft holds, per (product, variant)."""

    def __init__(self, ledger, low_stock_threshold: int = None):
        self.ledger = ledger
        if low_stock_threshold is None:
            low_stock_threshold = config_settings.LOW_STOCK_THRESHOLD
        self.low_stock_threshold = low_stock_threshold

    async def for_variants(self, session, keys: Iterable[Tuple[int, str]]) -> Dict[Tuple[int, str], VariantAvailability]:
        keys = list(dict.fromkeys((int(p), str(l)) for p, l in keys))
        stocks = await read_variant_stocks(session, keys)
        reserved = await self.ledger.reserved_quantities(keys)
        out = {}
        for k in keys:
            if k not in stocks:
                continue
            r = reserved.get(k, 0)
            out[k] = VariantAvailability(stock=stocks[k], reserved=r, available=available_stock(stocks[k], r))
        return out

    def classify(self, requested: int, available: int) -> Classification:
        return classify(requested, available, self.low_stock_threshold)
