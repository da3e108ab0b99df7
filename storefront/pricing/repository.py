from typing import Any, Dict, Optional
from sqlalchemy import select, update
from storefront.common.utils import now
from storefront.schema.full_schema import DeliverySetting

SETTINGS_FIELDS = ("take_delivery_fee", "check_threshold", "delivery_fee", "free_delivery_threshold",
                   "allowed_zip_codes")


def settings_to_dict(row: DeliverySetting) -> Dict[str, Any]:
    return {f: getattr(row, f) for f in SETTINGS_FIELDS}


async def fetch_active_settings(session) -> Optional[Dict[str, Any]]:
    stmt = (select(DeliverySetting).where(DeliverySetting.is_active.is_(True))
            .order_by(DeliverySetting.updated_at.desc(), DeliverySetting.id.desc()).limit(1))
    res = await session.execute(stmt)
    row = res.scalar_one_or_none()
    return settings_to_dict(row) if row else None


async def replace_active_settings(session, values: Dict[str, Any]) -> Dict[str, Any]:
    """Deactivate the current configuration and store a new active one."""
    await session.execute(update(DeliverySetting).where(DeliverySetting.is_active.is_(True))
                          .values(is_active=False, updated_at=now()))
    row = DeliverySetting(**values, is_active=True)
    session.add(row)
    await session.flush()
    return settings_to_dict(row)
