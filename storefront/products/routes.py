import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.custom_exceptions import NotFoundError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_ledger, get_session
from storefront.inventory.availability import AvailabilityCalculator
from storefront.inventory.repository import list_product_variants
from storefront.products.repository import find_product_by_pid

prods_public_router = APIRouter()


@prods_public_router.get("/{product_public_id}")
async def get_product_details(product_public_id: uuid.UUID, session: AsyncSession = Depends(get_session),
                              ledger=Depends(get_ledger)):
    product = await find_product_by_pid(session, product_public_id)
    if product is None:
        raise NotFoundError("Product not found")

    variants = await list_product_variants(session, product.id)
    calculator = AvailabilityCalculator(ledger)
    availability = await calculator.for_variants(session, [(product.id, v.label) for v in variants])

    # shoppers see stock net of live holds, never the durable count
    out_variants = []
    for v in variants:
        avail = availability.get((product.id, v.label))
        available = avail.available if avail else 0
        out_variants.append({
            "label": v.label,
            "stock": available,
            "in_stock": available > 0,
            "low_stock": 0 < available < calculator.low_stock_threshold,
        })

    data = {
        "product_id": str(product.public_id),
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "image_url": product.image_url,
        "category": product.category,
        "variants": out_variants,
        "in_stock": any(v["in_stock"] for v in out_variants),
    }
    return success_response({"product": data})
