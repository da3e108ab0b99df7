from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import and_, delete, select, tuple_, update
from storefront import logger
from storefront.common.custom_exceptions import InsufficientStockError, StockNotFoundError, ValidationError
from storefront.common.utils import now
from storefront.schema.full_schema import ProductVariant


async def lock_variant(session, product_id: int, label: str) -> Optional[ProductVariant]:
    stmt = (select(ProductVariant)
            .where(ProductVariant.product_id == product_id, ProductVariant.label == label)
            .with_for_update()
            .execution_options(populate_existing=True))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def commit_stock(session, items: Iterable[Dict[str, Any]]) -> None:
    """Decrement durable stock for every line under a row lock.

    Caller owns the transaction: on any raise nothing here must be committed.
    Lines are processed in (product_id, label) order so concurrent commits
    over overlapping variants lock rows in the same order.
    """
    ordered = sorted(items, key=lambda it: (int(it["product_id"]), str(it["variant_label"])))
    for it in ordered:
        pid = int(it["product_id"])
        label = str(it["variant_label"])
        q = int(it["quantity"])

        variant = await lock_variant(session, pid, label)
        if variant is None:
            raise StockNotFoundError(f"Variant {label} not found for product {pid}",
                                     details={"product_id": pid, "variant_label": label})
        if variant.stock < q:
            raise InsufficientStockError(
                f"Insufficient stock for product {pid} ({label})",
                details={"product_id": pid, "variant_label": label, "requested": q, "available": variant.stock})

        # guarded decrement, rowcount 0 means the row changed under us
        upd = (update(ProductVariant)
               .where(and_(ProductVariant.id == variant.id, ProductVariant.stock >= q))
               .values(stock=ProductVariant.stock - q, updated_at=now())
               .execution_options(synchronize_session="fetch"))
        result = await session.execute(upd)
        if result.rowcount != 1:
            raise InsufficientStockError(
                f"Insufficient stock or concurrent modification for product {pid} ({label})",
                details={"product_id": pid, "variant_label": label, "requested": q})

    await session.flush()
    logger.debug("stock.committed", extra={"lines": len(ordered)})


async def read_variant_stocks(session, keys: Iterable[Tuple[int, str]]) -> Dict[Tuple[int, str], int]:
    keys = list({(int(p), str(l)) for p, l in keys})
    if not keys:
        return {}
    stmt = (select(ProductVariant.product_id, ProductVariant.label, ProductVariant.stock)
            .where(tuple_(ProductVariant.product_id, ProductVariant.label).in_(keys)))
    res = await session.execute(stmt)
    return {(int(r.product_id), r.label): int(r.stock) for r in res.all()}


async def list_product_variants(session, product_id: int) -> List[ProductVariant]:
    stmt = select(ProductVariant).where(ProductVariant.product_id == product_id).order_by(ProductVariant.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


# admin stock adjustment -------------------------------------------------------------------

def _validate_levels(levels: List[Dict[str, Any]]):
    seen = set()
    for lvl in levels:
        if int(lvl["stock"]) < 0:
            raise ValidationError(f"Stock for {lvl['label']} cannot be negative")
        if lvl["label"] in seen:
            raise ValidationError(f"Duplicate variant {lvl['label']}")
        seen.add(lvl["label"])


async def set_stock_levels(session, product_id: int, levels: List[Dict[str, Any]]) -> List[ProductVariant]:
    """Overwrite stock of existing variants, each row locked while written."""
    _validate_levels(levels)
    updated = []
    for lvl in levels:
        variant = await lock_variant(session, product_id, lvl["label"])
        if variant is None:
            raise StockNotFoundError(f"Variant {lvl['label']} not found",
                                     details={"variant_label": lvl["label"]})
        variant.stock = int(lvl["stock"])
        variant.updated_at = now()
        session.add(variant)
        updated.append(variant)
    await session.flush()
    return updated


async def add_variants(session, product_id: int, levels: List[Dict[str, Any]]) -> List[ProductVariant]:
    _validate_levels(levels)
    existing = {v.label for v in await list_product_variants(session, product_id)}
    clash = [lvl["label"] for lvl in levels if lvl["label"] in existing]
    if clash:
        raise ValidationError("Variants already exist", details={"variants": clash})
    created = []
    for lvl in levels:
        variant = ProductVariant(product_id=product_id, label=lvl["label"], stock=int(lvl["stock"]))
        session.add(variant)
        created.append(variant)
    await session.flush()
    return created


async def delete_variants(session, product_id: int, labels: List[str]) -> int:
    stmt = delete(ProductVariant).where(ProductVariant.product_id == product_id, ProductVariant.label.in_(labels))
    res = await session.execute(stmt)
    if res.rowcount == 0:
        raise StockNotFoundError("No matching variants to delete", details={"variants": labels})
    return res.rowcount
