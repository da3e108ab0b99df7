"""initial storefront schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 10:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name, nullable=False, index=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, index=index)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("phone", sa.String(20), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_customer_public_id", "customer", ["public_id"], unique=True)

    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.Column("category", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("deleted_at", nullable=True),
    )
    op.create_index("ix_product_public_id", "product", ["public_id"], unique=True)

    op.create_table(
        "productvariant",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id", ondelete="CASCADE"), nullable=False),
        sa.Column("label", sa.String(64), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at"),
        sa.UniqueConstraint("product_id", "label", name="uq_productvariant_product_label"),
        sa.CheckConstraint("stock >= 0", name="ck_productvariant_stock_non_negative"),
    )
    op.create_index("ix_productvariant_product_id", "productvariant", ["product_id"])

    op.create_table(
        "cartitem",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_key", sa.String(128), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id", ondelete="CASCADE"), nullable=False),
        sa.Column("variant_label", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("owner_key", "product_id", "variant_label", name="uq_cartitem_owner_product_variant"),
    )
    op.create_index("ix_cartitem_owner_key", "cartitem", ["owner_key"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        sa.Column("delivery_fee", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("customer_name", sa.String(128), nullable=True),
        sa.Column("customer_email", sa.String(320), nullable=True),
        sa.Column("customer_phone", sa.String(20), nullable=True),
        sa.Column("shipping_full_name", sa.String(128), nullable=False),
        sa.Column("shipping_phone", sa.String(20), nullable=False),
        sa.Column("shipping_phone2", sa.String(20), nullable=True),
        sa.Column("shipping_line1", sa.String(255), nullable=False),
        sa.Column("shipping_line2", sa.String(255), nullable=True),
        sa.Column("shipping_landmark", sa.String(255), nullable=True),
        sa.Column("shipping_city", sa.String(128), nullable=False),
        sa.Column("shipping_state", sa.String(128), nullable=False),
        sa.Column("shipping_country", sa.String(64), nullable=False),
        sa.Column("shipping_zip_code", sa.String(16), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("confirmed_at", nullable=True),
    )
    op.create_index("ix_orders_public_id", "orders", ["public_id"], unique=True)
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "orderitem",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("variant_label", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_description", sa.Text(), nullable=True),
        sa.Column("product_image_url", sa.String(2048), nullable=True),
        sa.Column("product_category", sa.String(200), nullable=True),
    )
    op.create_index("ix_orderitem_order_id", "orderitem", ["order_id"])

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False,
                  unique=True),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("gateway_meta", sa.JSON(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("paid_at", nullable=True),
    )
    op.create_index("ix_payment_method", "payment", ["method"])
    op.create_index("ix_payment_status", "payment", ["status"])

    op.create_table(
        "deliverysetting",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("take_delivery_fee", sa.Boolean(), nullable=False),
        sa.Column("check_threshold", sa.Boolean(), nullable=False),
        sa.Column("delivery_fee", sa.Integer(), nullable=False),
        sa.Column("free_delivery_threshold", sa.Integer(), nullable=False),
        sa.Column("allowed_zip_codes", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_deliverysetting_is_active", "deliverysetting", ["is_active"])


def downgrade() -> None:
    """Downgrade schema."""
    for table in ("deliverysetting", "payment", "orderitem", "orders", "cartitem", "productvariant",
                  "product", "customer"):
        op.drop_table(table)
