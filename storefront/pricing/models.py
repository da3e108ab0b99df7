from typing import List
from pydantic import BaseModel, Field


class PricingResult(BaseModel):
    can_deliver: bool
    subtotal: int
    delivery_fee: int = 0
    free_delivery_applied: bool = False
    final_total: int
    message: str


class DeliverySettingsIn(BaseModel):
    take_delivery_fee: bool = True
    check_threshold: bool = True
    delivery_fee: int = Field(0, ge=0)
    free_delivery_threshold: int = Field(0, ge=0)
    allowed_zip_codes: List[str] = Field(default_factory=list)

