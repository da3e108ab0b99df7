import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid, CheckConstraint
from uuid6 import uuid7
from sqlmodel import Column, SQLModel, Field, String
from storefront.common.utils import now


class Customer(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7,
        sa_column=Column(Uuid(), unique=True, index=True, nullable=False))
    name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True, unique=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# --------------------------------------------------------------------------------------------
# catalog and durable stock

class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7,
        sa_column=Column(Uuid(), unique=True, index=True, nullable=False))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    description: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    price: int = Field(default=0, sa_column=Column(Integer, nullable=False))  # discounted selling price in rs
    image_url: Optional[str] = Field(default=None, sa_column=Column(String(2048), nullable=True))
    category: Optional[str] = Field(default=None, sa_column=Column(String(200), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class ProductVariant(SQLModel, table=True):
    """Durable per-(product, variant) stock count, the source of truth for inventory."""
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    label: str = Field(sa_column=Column(String(64), nullable=False))
    stock: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    __table_args__ = (
        UniqueConstraint("product_id", "label", name="uq_productvariant_product_label"),
        CheckConstraint("stock >= 0", name="ck_productvariant_stock_non_negative"),
    )

# --------------------------------------------------------------------------------------------

class CartItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_key: str = Field(sa_column=Column(String(128), nullable=False, index=True))  # "user:<id>" | "guest:<session>"
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False))
    variant_label: str = Field(sa_column=Column(String(64), nullable=False))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("owner_key", "product_id", "variant_label", name="uq_cartitem_owner_product_variant"),
    )

# --------------------------------------------------------------------------------------------
class OrderStatus(enum.IntEnum):
    PENDING = 10
    CONFIRMED = 20
    UNPLACED = 30
    CANCELLED = 40


class PaymentStatus(enum.IntEnum):
    PENDING = 0
    INITIATED = 5
    COMPLETED = 10
    FAILED = 20


class PaymentMethod(str, enum.Enum):
    UPI = "UPI"
    COD = "COD"


class Orders(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(), unique=True, index=True, nullable=False))
    order_number: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    customer_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("customer.id", ondelete="SET NULL"), index=True))
    status: int = Field(default=OrderStatus.PENDING.value, sa_column=Column(Integer, nullable=False, index=True))
    payment_method: str = Field(sa_column=Column(String(32), nullable=False))
    subtotal: int = Field(default=0, sa_column=Column(Integer, nullable=False))  # stored in rs
    delivery_fee: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    total_amount: int = Field(default=0, sa_column=Column(Integer, nullable=False))

    # customer and shipping snapshot, independent of live customer/address rows
    customer_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    customer_email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True))
    customer_phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    shipping_full_name: str = Field(sa_column=Column(String(128), nullable=False))
    shipping_phone: str = Field(sa_column=Column(String(20), nullable=False))
    shipping_phone2: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    shipping_line1: str = Field(sa_column=Column(String(255), nullable=False))
    shipping_line2: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    shipping_landmark: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    shipping_city: str = Field(sa_column=Column(String(128), nullable=False))
    shipping_state: str = Field(sa_column=Column(String(128), nullable=False))
    shipping_country: str = Field(sa_column=Column(String(64), nullable=False))
    shipping_zip_code: str = Field(sa_column=Column(String(16), nullable=False))

    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, index=True))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
    confirmed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class OrderItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="RESTRICT"), nullable=False))
    variant_label: str = Field(sa_column=Column(String(64), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    unit_price: int = Field(sa_column=Column(Integer, nullable=False))  # rs
    subtotal: int = Field(sa_column=Column(Integer, nullable=False))
    product_name: str = Field(sa_column=Column(String(255), nullable=False))
    product_description: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    product_image_url: Optional[str] = Field(default=None, sa_column=Column(String(2048), nullable=True))
    product_category: Optional[str] = Field(default=None, sa_column=Column(String(200), nullable=True))


class Payment(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True))
    method: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    status: int = Field(default=PaymentStatus.PENDING.value, sa_column=Column(Integer, nullable=False, index=True))
    amount: int = Field(sa_column=Column(Integer, nullable=False))
    transaction_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    gateway_meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
    paid_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

# --------------------------------------------------------------------------------------------

class DeliverySetting(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    take_delivery_fee: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    check_threshold: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    delivery_fee: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    free_delivery_threshold: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    allowed_zip_codes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
