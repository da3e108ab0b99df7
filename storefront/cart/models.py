import uuid
from typing import List
from pydantic import BaseModel, Field


class CartItemInput(BaseModel):
    product_id: uuid.UUID
    variant_label: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(1, ge=1, le=1000)


class CartItemQuantity(BaseModel):
    quantity: int = Field(..., ge=1, le=1000)


class CartLineRef(BaseModel):
    product_id: uuid.UUID
    variant_label: str = Field(..., min_length=1, max_length=64)


class CheckProductsRequest(BaseModel):
    items: List[CartLineRef] = Field(..., min_length=1, max_length=100)
