import uuid
from typing import Optional
from sqlalchemy import select
from storefront.schema.full_schema import Product


async def find_product_by_pid(session, product_pid: uuid.UUID, active_only: bool = True) -> Optional[Product]:
    stmt = select(Product).where(Product.public_id == product_pid, Product.deleted_at.is_(None))
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
