import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.common.custom_exceptions import NotFoundError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.identity.dependencies import require_admin
from storefront.inventory.models import ProductStocksIn, StockNamesIn
from storefront.inventory.repository import add_variants, delete_variants, list_product_variants, set_stock_levels
from storefront.products.repository import find_product_by_pid

stock_admin_router = APIRouter(dependencies=[Depends(require_admin)])


async def _product_or_404(session, product_public_id: uuid.UUID):
    product = await find_product_by_pid(session, product_public_id, active_only=False)
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def _stock_view(session, product):
    variants = await list_product_variants(session, product.id)
    return {"product_id": str(product.public_id),
            "product_stocks": [{"stock_name": v.label, "stock": v.stock} for v in variants]}


@stock_admin_router.put("/{product_public_id}/stock")
async def update_stock(product_public_id: uuid.UUID, payload: ProductStocksIn,
                       session: AsyncSession = Depends(get_session)):
    product = await _product_or_404(session, product_public_id)
    levels = [{"label": s.stock_name, "stock": s.stock} for s in payload.product_stocks]
    await set_stock_levels(session, product.id, levels)
    await session.commit()
    logger.info("admin.stock.updated", extra={"product_id": str(product.public_id), "variants": len(levels)})
    return success_response(await _stock_view(session, product))


@stock_admin_router.post("/{product_public_id}/stock")
async def add_stock(product_public_id: uuid.UUID, payload: ProductStocksIn,
                    session: AsyncSession = Depends(get_session)):
    product = await _product_or_404(session, product_public_id)
    levels = [{"label": s.stock_name, "stock": s.stock} for s in payload.product_stocks]
    await add_variants(session, product.id, levels)
    await session.commit()
    logger.info("admin.stock.added", extra={"product_id": str(product.public_id), "variants": len(levels)})
    return success_response(await _stock_view(session, product), status_code=status.HTTP_201_CREATED)


@stock_admin_router.delete("/{product_public_id}/stock")
async def delete_stock(product_public_id: uuid.UUID, payload: StockNamesIn,
                       session: AsyncSession = Depends(get_session)):
    product = await _product_or_404(session, product_public_id)
    removed = await delete_variants(session, product.id, payload.stock_names)
    await session.commit()
    logger.info("admin.stock.deleted", extra={"product_id": str(product.public_id), "removed": removed})
    return success_response(await _stock_view(session, product))
