import uuid
from typing import List, Optional
from pydantic import BaseModel, Field


class CheckoutItemIn(BaseModel):
    product_id: uuid.UUID
    variant_label: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1)


class ShippingAddressIn(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=128)
    phone: str = Field(..., min_length=6, max_length=20)
    alternate_phone: Optional[str] = Field(None, max_length=20)
    line1: str = Field(..., min_length=1, max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    landmark: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=128)
    state: str = Field(..., min_length=1, max_length=128)
    country: str = Field("India", max_length=64)
    zip_code: str = Field(..., min_length=3, max_length=16)


class CheckoutRequest(BaseModel):
    items: List[CheckoutItemIn] = Field(..., min_length=1)
    address: ShippingAddressIn
