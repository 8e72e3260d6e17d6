from decimal import Decimal

import pytest

from subscription_engine.exceptions import AccessDeniedError, NotFoundError
from subscription_engine.models import PriceOverrideCreate

pytestmark = pytest.mark.asyncio


async def test_bulk_activation_reports_each_id(client, catalog):
    # --- ARRANGE ---
    first, second = await client.request_subscriptions(
        catalog.user_id, catalog.tariffs["day7"], catalog.category_ids[:2], catalog.location_id
    )

    # --- ACT ---
    result = await client.activate_subscriptions([first.id, second.id, 999999], catalog.admin_id, "invoice")

    # --- ASSERT ---
    assert sorted(result.succeeded_ids) == sorted([first.id, second.id])
    assert all(s.status == "active" for s in result.succeeded)
    assert len(result.failed) == 1
    assert result.failed[0].id == 999999
    assert result.failed[0].error == "not_found"


async def test_bulk_activation_keeps_going_after_invalid_state(client, catalog):
    first, second = await client.request_subscriptions(
        catalog.user_id, catalog.tariffs["day1"], catalog.category_ids[:2], catalog.location_id
    )
    await client.activate_subscription(first.id, catalog.admin_id, "card")

    result = await client.activate_subscriptions([first.id, second.id], catalog.admin_id, "card")

    assert result.succeeded_ids == [second.id]
    assert result.failed[0].error == "invalid_state"


async def test_bulk_activation_requires_admin(client, catalog):
    sub = await client.request_subscription(
        catalog.user_id, catalog.tariffs["day1"], catalog.category_id, catalog.location_id
    )

    with pytest.raises(AccessDeniedError):
        await client.activate_subscriptions([sub.id], catalog.user_id, "card")

    assert (await client.get_subscription(sub.id)).status == "pending"


async def test_price_resolution_order(client, catalog):
    day1 = catalog.tariffs["day1"]

    # --- базовая цена тарифа ---
    assert await client.get_tariff_price(day1, catalog.location_id, catalog.category_id) == Decimal("1000.00")

    # --- цена на локацию ---
    await client.set_price_override(PriceOverrideCreate(tariff_id=day1, location_id=catalog.location_id, price=Decimal("800")))
    assert await client.get_tariff_price(day1, catalog.location_id, catalog.category_id) == Decimal("800")

    # --- цена на локацию и категорию важнее ---
    await client.set_price_override(
        PriceOverrideCreate(tariff_id=day1, location_id=catalog.location_id, category_id=catalog.category_id, price=Decimal("650"))
    )
    assert await client.get_tariff_price(day1, catalog.location_id, catalog.category_id) == Decimal("650")
    assert await client.get_tariff_price(day1, catalog.location_id, catalog.category_ids[1]) == Decimal("800")

    # Цена фиксируется в заявке
    sub = await client.request_subscription(catalog.user_id, day1, catalog.category_id, catalog.location_id)
    assert sub.price_paid == Decimal("650")


async def test_tariff_catalog_and_seed(client, catalog):
    # Повторный seed ничего не добавляет
    assert await client.seed_tariffs() == 0

    active_codes = {t.code for t in await client.list_tariffs()}
    assert "archived" not in active_codes
    assert {"demo", "day1", "day3", "day7", "premium_31"} <= active_codes

    # Прайс: каждый активный тариф x локация x категория
    tariff_catalog = await client.get_tariff_catalog()
    assert len(tariff_catalog.prices) == len(tariff_catalog.tariffs) * 1 * 3
    assert all(p.price == next(t.price for t in tariff_catalog.tariffs if t.id == p.tariff_id) for p in tariff_catalog.prices)

    with pytest.raises(NotFoundError):
        await client.get_tariff_price(999999, catalog.location_id)
