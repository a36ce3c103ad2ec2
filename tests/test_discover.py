import asyncio

from fakes import FAST_SETTINGS, ORIGIN, FakeSession

from pantrywatch.catalog.discover import CategoryDiscoverer, match_target, select_categories
from pantrywatch.config import DEFAULT_CONFIG, CategoryRules
from pantrywatch.normalizers import normalize_url

RULES = CategoryRules.from_config(DEFAULT_CONFIG)
DOMAIN = "www.costcobusinessdelivery.com"

ANCHORS = [
    {"href": f"{ORIGIN}/deli.html", "text": "Deli (56)"},
    {"href": f"{ORIGIN}/Deli.html", "text": "Deli"},
    {"href": f"{ORIGIN}/meat-seafood.html", "text": "Meat & Seafood (120) results"},
    {"href": f"{ORIGIN}/frozen.html", "text": "Frozen"},
    {"href": f"{ORIGIN}/frozen.html#collapse", "text": "Frozen Foods"},
    {"href": f"{ORIGIN}/deli-party-trays.html", "text": "Party Trays"},
    {"href": f"{ORIGIN}/frozen-service.html", "text": "Frozen Customer Service"},
    {"href": f"{ORIGIN}/meat", "text": "Meat"},
    {"href": "https://ads.criteo.com/dairy.html", "text": "Dairy & Eggs"},
    {"href": f"{ORIGIN}/grocery.html", "text": "Grocery"},
    {"href": f"{ORIGIN}/produce.html", "text": ""},
]


def test_select_categories_filters_and_sorts() -> None:
    categories = select_categories(ANCHORS, RULES, domain=DOMAIN, current_url=f"{ORIGIN}/grocery")

    assert [category.name for category in categories] == ["Deli", "Frozen", "Meat & Seafood"]
    frozen = next(category for category in categories if category.name == "Frozen")
    assert frozen.canonical_name == "Frozen Foods"
    assert frozen.keyword == "frozen"


def test_select_categories_has_unique_urls_within_allow_list() -> None:
    categories = select_categories(ANCHORS * 3, RULES, domain=DOMAIN)

    normalized = [normalize_url(category.url) for category in categories]
    assert len(normalized) == len(set(normalized))
    assert all(category.canonical_name in RULES.targets for category in categories)


def test_select_categories_skips_current_page() -> None:
    anchors = [{"href": f"{ORIGIN}/deli.html", "text": "Deli"}]
    assert select_categories(anchors, RULES, domain=DOMAIN, current_url=f"{ORIGIN}/deli.html") == []


def test_select_categories_empty_when_nothing_matches() -> None:
    anchors = [{"href": f"{ORIGIN}/office.html", "text": "Office Supplies"}]
    assert select_categories(anchors, RULES, domain=DOMAIN) == []


def test_match_target_prefers_exact_then_substring() -> None:
    targets = ("Frozen Foods", "Deli")
    assert match_target("deli", targets) == "Deli"
    assert match_target("Frozen", targets) == "Frozen Foods"
    assert match_target("Frozen Foods & Desserts", targets) == "Frozen Foods"
    assert match_target("Paper Goods", targets) is None


def test_discoverer_reads_landing_page_links() -> None:
    session = FakeSession(anchors=ANCHORS)
    discoverer = CategoryDiscoverer(FAST_SETTINGS, RULES)

    categories = asyncio.run(discoverer.discover(session))

    assert session.visited == [FAST_SETTINGS.landing_url]
    assert [category.name for category in categories] == ["Deli", "Frozen", "Meat & Seafood"]


def test_discoverer_returns_empty_when_landing_fails() -> None:
    session = FakeSession(anchors=ANCHORS, failing_urls=[FAST_SETTINGS.landing_url])
    discoverer = CategoryDiscoverer(FAST_SETTINGS, RULES)

    assert asyncio.run(discoverer.discover(session)) == []


def test_offsite_link_mentioning_storefront_host_is_ignored() -> None:
    anchors = [
        {"href": f"https://tracker.example.net/deli.html?ref={DOMAIN}", "text": "Deli"},
        {"href": f"https://{DOMAIN}.mirror.example.com/dairy.html", "text": "Dairy & Eggs"},
    ]
    assert select_categories(anchors, RULES, domain=DOMAIN) == []
