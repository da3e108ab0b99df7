from fastapi import APIRouter
from storefront.cart.routes import carts_router
from storefront.common.routes import home_router
from storefront.inventory.routes import stock_admin_router
from storefront.orders.routes import orders_router
from storefront.pricing.routes import delivery_admin_router, delivery_public_router
from storefront.products.routes import prods_public_router

cur_version = "v1"
version_prefix = f"/api/{cur_version}"

public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(prods_public_router, prefix="/products", tags=["products-public"])
public_routers.include_router(carts_router, prefix="/cart", tags=["cart"])
public_routers.include_router(orders_router, prefix="/orders", tags=["orders"])
public_routers.include_router(delivery_public_router, prefix="/delivery", tags=["delivery"])
public_routers.include_router(home_router, tags=["home"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin")

admin_routers.include_router(stock_admin_router, prefix="/products", tags=["stock-admin"])
admin_routers.include_router(delivery_admin_router, prefix="/settings", tags=["settings-admin"])
