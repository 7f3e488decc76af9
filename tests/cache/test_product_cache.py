import time
import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.core.cache_config import CACHE_TTL, product_key, product_listing_key
from app.crud.product import product as crud_product
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.product import product_service


def _ttl(cache: CacheManager, key: str) -> float:
    return cache.backend._cache[key]["expiry"] - time.time()


@pytest.mark.asyncio
async def test_product_details_cache_cycle(db_session: Session, cache: CacheManager, product_factory, monkeypatch):
    product = product_factory(name="Lamp", price="19.99")
    called = {"get": 0}
    original_get = crud_product.get

    def counting_get(db, id):
        called["get"] += 1
        return original_get(db, id=id)

    monkeypatch.setattr("app.crud.product.product.get", counting_get, raising=True)

    first = await product_service.get_product(db_session, cache, product.id)
    second = await product_service.get_product(db_session, cache, str(product.id))

    assert called["get"] == 1
    assert first == second
    assert first.name == "Lamp"
    assert first.price == 19.99
    assert 0 < _ttl(cache, product_key(product.id)) <= CACHE_TTL["product_details"]


@pytest.mark.asyncio
async def test_missing_product_is_404_and_not_cached(db_session: Session, cache: CacheManager):
    with pytest.raises(HTTPException) as exc:
        await product_service.get_product(db_session, cache, 999)
    assert exc.value.status_code == 404
    assert await cache.exists(product_key(999)) is False


@pytest.mark.asyncio
@pytest.mark.parametrize("raw_id", ["abc", "0", "-3", "1.5", ""])
async def test_invalid_product_id_touches_neither_cache_nor_store(
    db_session: Session, recording_cache: CacheManager, monkeypatch, raw_id
):
    def fail_get(db, id):
        raise AssertionError("store should not be queried")

    monkeypatch.setattr("app.crud.product.product.get", fail_get, raising=True)

    with pytest.raises(HTTPException) as exc:
        await product_service.get_product(db_session, recording_cache, raw_id)

    assert exc.value.status_code == 400
    assert recording_cache.backend.calls == []


@pytest.mark.asyncio
async def test_listing_pagination_flags(db_session: Session, cache: CacheManager, product_factory):
    for i in range(15):
        product_factory(name=f"Item {i:02d}")

    first = await product_service.list_products(db_session, cache, page="1", limit="10")
    second = await product_service.list_products(db_session, cache, page="2", limit="10")

    assert len(first.products) == 10
    assert first.pagination.total_count == 15
    assert first.pagination.total_pages == 2
    assert first.pagination.has_next is True
    assert first.pagination.has_prev is False

    assert len(second.products) == 5
    assert second.pagination.has_next is False
    assert second.pagination.has_prev is True
    assert {p.id for p in first.products}.isdisjoint({p.id for p in second.products})


@pytest.mark.asyncio
async def test_listing_served_from_cache_until_invalidated(
    db_session: Session, cache: CacheManager, product_factory, monkeypatch
):
    product_factory()
    called = {"page": 0}
    original_page = crud_product.get_page

    def counting_page(db, **kwargs):
        called["page"] += 1
        return original_page(db, **kwargs)

    monkeypatch.setattr(crud_product, "get_page", counting_page, raising=True)

    await product_service.list_products(db_session, cache)
    cached = await product_service.list_products(db_session, cache)
    assert called["page"] == 1
    assert cached.pagination.total_count == 1

    key = product_listing_key(1, 10, "createdAt", "asc")
    assert 0 < _ttl(cache, key) <= CACHE_TTL["product_list"]

    await product_service.create_product(db_session, cache, ProductCreate(
        name="New", description="Fresh", price="5.00", category="electronics"
    ))
    assert await cache.exists(key) is False

    refreshed = await product_service.list_products(db_session, cache)
    assert called["page"] == 2
    assert refreshed.pagination.total_count == 2


@pytest.mark.asyncio
async def test_listing_parameters_are_normalized_into_the_key(db_session: Session, cache: CacheManager, product_factory):
    product_factory()

    await product_service.list_products(
        db_session, cache, page="0", limit="500", sort_by="password; DROP TABLE", sort_order="sideways"
    )
    assert await cache.exists(product_listing_key(1, 100, "createdAt", "asc")) is True

    await product_service.list_products(db_session, cache, page="x", limit="-4", category="")
    assert await cache.exists(product_listing_key(1, 1, "createdAt", "asc")) is True


@pytest.mark.asyncio
async def test_listing_sort_and_category_filter(db_session: Session, cache: CacheManager, product_factory):
    product_factory(name="Cheap", price="1.00", category="books")
    product_factory(name="Mid", price="50.00", category="books")
    product_factory(name="Pricey", price="99.00", category="toys")

    by_price = await product_service.list_products(db_session, cache, sort_by="price", sort_order="desc")
    assert [p.name for p in by_price.products] == ["Pricey", "Mid", "Cheap"]

    books = await product_service.list_products(db_session, cache, sort_by="name", category="books")
    assert [p.name for p in books.products] == ["Cheap", "Mid"]
    assert books.pagination.total_count == 2
    assert await cache.exists(product_listing_key(1, 10, "name", "asc", "books")) is True


@pytest.mark.asyncio
async def test_create_validates_input(db_session: Session, cache: CacheManager):
    with pytest.raises(HTTPException) as exc:
        await product_service.create_product(db_session, cache, ProductCreate(name="No price", description="d", category="c"))
    assert exc.value.status_code == 400
    assert exc.value.detail == "Missing required fields"

    with pytest.raises(HTTPException) as exc:
        await product_service.create_product(db_session, cache, ProductCreate(
            name="Bad", description="d", price="ten", category="c"
        ))
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_create_defaults_in_stock(db_session: Session, cache: CacheManager):
    created = await product_service.create_product(db_session, cache, ProductCreate(
        name="Desk", description="Oak", price="120.50", category="furniture"
    ))
    assert created.id > 0
    assert created.in_stock is True
    assert created.price == 120.5


@pytest.mark.asyncio
async def test_update_applies_partial_fields_and_invalidates(db_session: Session, cache: CacheManager, product_factory):
    product = product_factory(name="Chair", price="30.00")
    await product_service.get_product(db_session, cache, product.id)
    await product_service.list_products(db_session, cache)
    listing_key = product_listing_key(1, 10, "createdAt", "asc")
    assert await cache.exists(product_key(product.id)) is True

    updated = await product_service.update_product(
        db_session, cache, product.id, ProductUpdate(price="35.00", in_stock=False)
    )

    assert updated.price == 35.0
    assert updated.in_stock is False
    assert updated.name == "Chair"
    assert await cache.exists(product_key(product.id)) is False
    assert await cache.exists(listing_key) is False

    fresh = await product_service.get_product(db_session, cache, product.id)
    assert fresh.price == 35.0


@pytest.mark.asyncio
async def test_update_rejects_empty_and_unknown(db_session: Session, cache: CacheManager, product_factory):
    product = product_factory()

    with pytest.raises(HTTPException) as exc:
        await product_service.update_product(db_session, cache, product.id, ProductUpdate())
    assert exc.value.status_code == 400
    assert exc.value.detail == "No valid fields provided for update"

    with pytest.raises(HTTPException) as exc:
        await product_service.update_product(db_session, cache, 4242, ProductUpdate(name="Ghost"))
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_delete_returns_snapshot_and_invalidates(db_session: Session, cache: CacheManager, product_factory):
    product = product_factory(name="Rug")
    product_id = product.id
    await product_service.get_product(db_session, cache, product_id)

    deleted = await product_service.delete_product(db_session, cache, product_id)

    assert deleted.id == product_id
    assert deleted.name == "Rug"
    assert await cache.exists(product_key(product_id)) is False
    with pytest.raises(HTTPException) as exc:
        await product_service.get_product(db_session, cache, product_id)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await product_service.delete_product(db_session, cache, product_id)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_invalidation_reaches_every_listing_page(db_session: Session, cache: CacheManager, product_factory):
    product = product_factory()
    for page in range(1, 151):
        await cache.set(product_listing_key(page, 10, "price", "desc"), {"products": []})
    await cache.set(product_key(product.id + 1), {"id": product.id + 1})

    await product_service.update_product(db_session, cache, product.id, ProductUpdate(name="Renamed"))

    remaining = [keys async for keys in cache.scan_pages("products:*")]
    assert remaining == []
    # Unrelated single-product entries survive
    assert await cache.exists(product_key(product.id + 1)) is True


@pytest.mark.asyncio
async def test_unavailable_cache_still_serves_correct_results(
    db_session: Session, failing_cache: CacheManager, product_factory
):
    product = product_factory(name="Kettle", price="25.00")

    fetched = await product_service.get_product(db_session, failing_cache, product.id)
    assert fetched.name == "Kettle"

    listing = await product_service.list_products(db_session, failing_cache)
    assert listing.pagination.total_count == 1

    created = await product_service.create_product(db_session, failing_cache, ProductCreate(
        name="Toaster", description="Two slots", price="40.00", category="kitchen"
    ))
    updated = await product_service.update_product(db_session, failing_cache, created.id, ProductUpdate(price="45.00"))
    assert updated.price == 45.0

    deleted = await product_service.delete_product(db_session, failing_cache, product.id)
    assert deleted.id == product.id


@pytest.mark.asyncio
@pytest.mark.parametrize("price", ["1e30", 1e300, "123456789012", "100000000", "99999999.999"])
async def test_create_and_update_reject_prices_beyond_the_column(
    db_session: Session, cache: CacheManager, product_factory, price
):
    product = product_factory(price="10.00")

    with pytest.raises(HTTPException) as exc:
        await product_service.create_product(db_session, cache, ProductCreate(
            name="Yacht", description="Large", price=price, category="boats"
        ))
    assert exc.value.status_code == 400
    assert exc.value.detail == "Price must be a valid non-negative number"

    with pytest.raises(HTTPException) as exc:
        await product_service.update_product(db_session, cache, product.id, ProductUpdate(price=price))
    assert exc.value.status_code == 400

    assert crud_product.count(db_session) == 1


@pytest.mark.asyncio
async def test_largest_storable_price_is_accepted(db_session: Session, cache: CacheManager):
    created = await product_service.create_product(db_session, cache, ProductCreate(
        name="Estate", description="Big", price="99999999.99", category="property"
    ))
    assert created.price == 99999999.99


@pytest.mark.asyncio
@pytest.mark.parametrize("page", ["3", "99999999999999999999"])
async def test_page_past_the_end_is_empty_without_a_page_query(
    db_session: Session, cache: CacheManager, product_factory, monkeypatch, page
):
    product_factory()

    def fail_page(db, **kwargs):
        raise AssertionError("page query should be skipped")

    monkeypatch.setattr(crud_product, "get_page", fail_page, raising=True)

    listing = await product_service.list_products(db_session, cache, page=page, limit="10")

    assert listing.products == []
    assert listing.pagination.page == int(page)
    assert listing.pagination.total_count == 1
    assert listing.pagination.has_next is False
    assert listing.pagination.has_prev is True


@pytest.mark.asyncio
async def test_fetch_variants_report_cache_hits(db_session: Session, cache: CacheManager, product_factory):
    product = product_factory()

    _, hit = await product_service.fetch_product(db_session, cache, product.id)
    assert hit is False
    _, hit = await product_service.fetch_product(db_session, cache, product.id)
    assert hit is True

    _, hit = await product_service.fetch_listing(db_session, cache, page="1")
    assert hit is False
    _, hit = await product_service.fetch_listing(db_session, cache, page="1")
    assert hit is True
