"""seed default delivery settings

Revision ID: b7d2f4a6c8e1
Revises: a1c3e5f7b9d2
Create Date: 2026-10-19 10:31:02.442871

"""
import json
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

now_ts = datetime.now(timezone.utc)

# revision identifiers, used by Alembic.
revision: str = 'b7d2f4a6c8e1'
down_revision: Union[str, Sequence[str], None] = 'a1c3e5f7b9d2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE = "deliverysetting"


def upgrade() -> None:
    """Flat fee with free delivery above a threshold, no zip restriction."""
    conn = op.get_bind()
    exists = conn.execute(sa.text(f"SELECT 1 FROM {TABLE} WHERE is_active = true LIMIT 1")).first()
    if exists:
        return
    conn.execute(
        sa.text(f"""
            INSERT INTO {TABLE} (take_delivery_fee, check_threshold, delivery_fee, free_delivery_threshold,
                                 allowed_zip_codes, is_active, created_at, updated_at)
            VALUES (true, true, :fee, :threshold, CAST(:zips AS JSON), true, :created, :updated)
        """),
        {"fee": 50, "threshold": 999, "zips": json.dumps([]), "created": now_ts, "updated": now_ts},
    )


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(sa.text(f"DELETE FROM {TABLE} WHERE delivery_fee = 50 AND free_delivery_threshold = 999"))
