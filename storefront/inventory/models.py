from typing import List
from pydantic import BaseModel, Field


class StockLevelIn(BaseModel):
    stock_name: str = Field(..., min_length=1, max_length=64)
    stock: int = Field(..., ge=0)


class ProductStocksIn(BaseModel):
    product_stocks: List[StockLevelIn] = Field(..., min_length=1)


class StockNamesIn(BaseModel):
    stock_names: List[str] = Field(..., min_length=1)
