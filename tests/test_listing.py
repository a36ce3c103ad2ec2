import asyncio
from dataclasses import replace

import pytest
from fakes import FAST_SETTINGS, ORIGIN, FakeSession, product_url
from tenacity import wait_none

import pantrywatch.selectors as selectors
from pantrywatch.errors import NavigationTimeoutError
from pantrywatch.retailers.listing import ListingPaginator, dedupe_in_order, is_product_url

CATEGORY_URL = f"{ORIGIN}/deli.html"


def _paginator(**overrides) -> ListingPaginator:
    settings = replace(FAST_SETTINGS, **overrides) if overrides else FAST_SETTINGS
    return ListingPaginator(settings, retry_wait=wait_none())


def test_is_product_url_filters_ads_and_offsite_links() -> None:
    assert is_product_url(product_url(1), ORIGIN)
    assert is_product_url(f"{ORIGIN}/p/12345", ORIGIN)
    assert not is_product_url("https://www.example.com/a.product.1.html", ORIGIN)
    assert not is_product_url(f"{ORIGIN}/a.product.1.html#reviews", ORIGIN)
    assert not is_product_url(f"{ORIGIN}/redirect?to=a.product.1.html", ORIGIN)
    assert not is_product_url(f"{ORIGIN}/rm?dest=a.product.1.html", ORIGIN)
    assert not is_product_url(f"{ORIGIN}/click.criteo.com/product", ORIGIN)
    assert not is_product_url(f"{ORIGIN}/deli.html", ORIGIN)
    assert not is_product_url("", ORIGIN)


def test_dedupe_in_order_keeps_first_seen() -> None:
    assert dedupe_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_first_matching_strategy_wins() -> None:
    first, second, last = (
        selectors.PRODUCT_LINK_STRATEGIES[0],
        selectors.PRODUCT_LINK_STRATEGIES[1],
        selectors.PRODUCT_LINK_STRATEGIES[-1],
    )
    page = {
        first: ["https://ads.criteo.com/product/1", f"{ORIGIN}/deli.html#top"],
        second: [product_url(1), product_url(2)],
        last: [product_url(3)],
    }
    session = FakeSession(listings={CATEGORY_URL: [page]})

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL, "Deli"))

    assert urls == [product_url(1), product_url(2)]
    assert session.strategy_calls == [first, second]


def test_injected_strategies_are_used() -> None:
    page = {"li.custom a": [product_url(7)]}
    session = FakeSession(listings={CATEGORY_URL: [page]})
    paginator = ListingPaginator(FAST_SETTINGS, strategies=["li.custom a"], retry_wait=wait_none())

    assert asyncio.run(paginator.collect(session, CATEGORY_URL)) == [product_url(7)]


def test_urls_accumulate_across_pages_without_duplicates() -> None:
    page_one = [product_url(i) for i in range(3)]
    page_two = [product_url(2), product_url(3), product_url(4)]
    session = FakeSession(listings={CATEGORY_URL: [page_one, page_two]})

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert urls == [product_url(i) for i in range(5)]


def test_page_cap_is_never_exceeded() -> None:
    pages = [[product_url(page * 10 + i) for i in range(2)] for page in range(6)]
    session = FakeSession(listings={CATEGORY_URL: pages})

    urls = asyncio.run(_paginator(max_pages_per_category=3).collect(session, CATEGORY_URL))

    assert len(urls) == 6
    assert session.advance_calls == 2


def test_default_page_cap_is_five() -> None:
    pages = [[product_url(page)] for page in range(8)]
    session = FakeSession(listings={CATEGORY_URL: pages})

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert urls == [product_url(page) for page in range(5)]


def test_empty_page_stops_pagination() -> None:
    session = FakeSession(listings={CATEGORY_URL: [[product_url(1)], [], [product_url(2)]]})

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert urls == [product_url(1)]


def test_pagination_timeout_still_advances() -> None:
    pages = [[product_url(1)], [product_url(2)]]
    session = FakeSession(listings={CATEGORY_URL: pages}, navigation_wait_fails=True)

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert urls == [product_url(1), product_url(2)]


def test_iter_listing_pages_yields_each_page() -> None:
    pages = [[product_url(1), product_url(2)], [product_url(3)]]
    session = FakeSession(listings={CATEGORY_URL: pages})

    async def gather() -> list[list[str]]:
        return [page async for page in _paginator().iter_listing_pages(session, CATEGORY_URL)]

    assert asyncio.run(gather()) == pages


def test_initial_navigation_failure_is_retried_then_raised() -> None:
    session = FakeSession(failing_urls=[CATEGORY_URL])

    with pytest.raises(NavigationTimeoutError):
        asyncio.run(_paginator().collect(session, CATEGORY_URL))
    assert session.visited == [CATEGORY_URL] * 3


def test_advance_clicks_the_located_control() -> None:
    pages = [[product_url(1)], [product_url(2)]]
    session = FakeSession(listings={CATEGORY_URL: pages})

    asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert session.clicked_selectors == [selectors.PAGINATION_FORWARD]


def test_failed_click_stops_with_collected_urls() -> None:
    pages = [[product_url(1)], [product_url(2)]]
    session = FakeSession(listings={CATEGORY_URL: pages}, click_fails=True)

    urls = asyncio.run(_paginator().collect(session, CATEGORY_URL))

    assert urls == [product_url(1)]
    assert session.advance_calls == 1
