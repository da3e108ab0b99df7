import pytest
from sqlalchemy import select
from storefront.common.custom_exceptions import InsufficientStockError, StockNotFoundError
from storefront.inventory.repository import commit_stock, read_variant_stocks
from storefront.schema.full_schema import ProductVariant


async def stock_of(session_maker, product_id, label):
    async with session_maker() as s:
        res = await s.execute(select(ProductVariant.stock).where(ProductVariant.product_id == product_id,
                                                                 ProductVariant.label == label))
        return res.scalar_one()


@pytest.mark.asyncio
async def test_commit_decrements_each_line(catalog, session_maker):
    tshirt = catalog["tshirt"]
    async with session_maker() as s:
        await commit_stock(s, [{"product_id": tshirt.id, "variant_label": "S", "quantity": 3},
                               {"product_id": tshirt.id, "variant_label": "M", "quantity": 2}])
        await s.commit()

    assert await stock_of(session_maker, tshirt.id, "S") == 7
    assert await stock_of(session_maker, tshirt.id, "M") == 0


@pytest.mark.asyncio
async def test_insufficient_line_leaves_no_partial_decrement(catalog, session_maker):
    tshirt = catalog["tshirt"]
    async with session_maker() as s:
        with pytest.raises(InsufficientStockError) as exc:
            await commit_stock(s, [{"product_id": tshirt.id, "variant_label": "S", "quantity": 3},
                                   {"product_id": tshirt.id, "variant_label": "M", "quantity": 5}])
        await s.rollback()

    assert exc.value.details["available"] == 2
    assert await stock_of(session_maker, tshirt.id, "S") == 10
    assert await stock_of(session_maker, tshirt.id, "M") == 2


@pytest.mark.asyncio
async def test_unknown_variant(catalog, session_maker):
    async with session_maker() as s:
        with pytest.raises(StockNotFoundError):
            await commit_stock(s, [{"product_id": catalog["tshirt"].id, "variant_label": "XXL", "quantity": 1}])
        await s.rollback()


@pytest.mark.asyncio
async def test_repeated_commits_never_go_negative(catalog, session_maker):
    tshirt = catalog["tshirt"]
    outcomes = []
    for _ in range(4):
        async with session_maker() as s:
            try:
                await commit_stock(s, [{"product_id": tshirt.id, "variant_label": "M", "quantity": 1}])
                await s.commit()
                outcomes.append(True)
            except InsufficientStockError:
                await s.rollback()
                outcomes.append(False)

    assert outcomes == [True, True, False, False]
    assert await stock_of(session_maker, tshirt.id, "M") == 0


@pytest.mark.asyncio
async def test_read_variant_stocks(catalog, db_session):
    tshirt = catalog["tshirt"]
    stocks = await read_variant_stocks(db_session, [(tshirt.id, "S"), (tshirt.id, "L"), (tshirt.id, "Q")])
    assert stocks == {(tshirt.id, "S"): 10, (tshirt.id, "L"): 0}
