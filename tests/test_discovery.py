import pytest

from src.services.opensea.errors import ConfigurationError, LimitExceededError
from src.services.opensea.models import SaleKind
from src.services.opensea.units import to_wei

from conftest import ADDRESS, asset_payload, run


@pytest.mark.parametrize("limit,pages", [(1, 1), (50, 1), (51, 2), (130, 3), (10000, 200)])
def test_fetch_assets_pages(onboarded, client, limiter, limit, pages):
    assets = run(onboarded.fetch_assets(limit))

    assert len(assets) == limit
    assert len(client.page_calls) == pages
    assert limiter.acquired == pages
    assert [a.token_id for a in assets] == [str(i) for i in range(limit)]


def test_last_page_is_sized_to_limit(onboarded, client):
    run(onboarded.fetch_assets(120))
    assert client.page_calls == [(ADDRESS, 50, 0), (ADDRESS, 50, 50), (ADDRESS, 20, 100)]


def test_zero_limit_makes_no_calls(onboarded, client):
    assert run(onboarded.fetch_assets(0)) == []
    assert client.page_calls == []


@pytest.mark.parametrize("limit", [10001, -1])
def test_limit_out_of_range(onboarded, client, limit):
    with pytest.raises(LimitExceededError) as exc_info:
        run(onboarded.fetch_assets(limit))
    assert exc_info.value.ceiling == 10000
    assert client.page_calls == []


def test_fetch_assets_requires_onboarding(session):
    with pytest.raises(ConfigurationError):
        run(session.fetch_assets(10))


def test_listed_below_price_filters_and_sorts(onboarded, client):
    client.assets = [
        asset_payload(1, "0.7"),
        asset_payload(2),
        asset_payload(3, "0.2", sale_kind=1),
        asset_payload(4, "0.4"),
        asset_payload(5, "0.6"),
        asset_payload(6, "0.05"),
    ]

    listed = run(onboarded.fetch_listed_below_price(6, to_wei("0.6")))

    assert [a.token_id for a in listed] == ["6", "4", "5"]
    assert all(a.sell_order.sale_kind == SaleKind.FIXED_PRICE for a in listed)
    assert all(a.listing_price <= to_wei("0.6") for a in listed)


def test_listed_below_price_without_ceiling(onboarded, client):
    client.assets = [asset_payload(1, "3"), asset_payload(2, "1"), asset_payload(3, "2")]
    listed = run(onboarded.fetch_listed_below_price(3))
    assert [a.token_id for a in listed] == ["2", "3", "1"]
