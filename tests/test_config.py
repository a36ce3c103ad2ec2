from pathlib import Path

import pytest

from pantrywatch.config import DEFAULT_CONFIG, CategoryRules, CrawlSettings, _deep_merge, load_config


def test_deep_merge_keeps_unrelated_defaults() -> None:
    merged = _deep_merge({"crawl": {"a": 1, "b": 2}, "x": [1]}, {"crawl": {"b": 3}, "x": [2]})
    assert merged == {"crawl": {"a": 1, "b": 3}, "x": [2]}


def test_load_config_merges_yaml_over_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("crawl:\n  region_code: '98101'\n  batch_size: 25\n", encoding="utf-8")

    config = load_config(path)

    assert config["crawl"]["region_code"] == "98101"
    assert config["crawl"]["batch_size"] == 25
    assert config["crawl"]["max_pages_per_category"] == 5
    assert config["categories"]["targets"] == DEFAULT_CONFIG["categories"]["targets"]


def test_load_config_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.yml")
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PANTRYWATCH_REGION_CODE", "60601")
    monkeypatch.setenv("SCRAPE_DELAY_MS", "500")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///other.sqlite")
    monkeypatch.setenv("PANTRYWATCH_JOB_TIMEOUT_S", "not-a-number")

    settings = CrawlSettings.from_config(load_config(tmp_path / "absent.yml"))

    assert settings.region_code == "60601"
    assert settings.settle_delay_ms == 500
    assert settings.database_url == "sqlite:///other.sqlite"
    assert settings.job_timeout_s == 600.0


def test_bundled_config_loads() -> None:
    settings = CrawlSettings.from_config(load_config())
    assert settings.region_code == "80031"
    assert settings.landing_url == "https://www.costcobusinessdelivery.com/grocery"
    assert settings.domain == "www.costcobusinessdelivery.com"
    assert settings.origin == "https://www.costcobusinessdelivery.com"


def test_settings_fall_back_on_invalid_values() -> None:
    settings = CrawlSettings.from_config(
        {"crawl": {"max_pages_per_category": 0, "batch_size": "ten", "settle_delay_ms": -5, "job_timeout_s": -1}}
    )
    assert settings.max_pages_per_category == 5
    assert settings.batch_size == 10
    assert settings.settle_delay_ms == 0
    assert settings.job_timeout_s == 600.0


def test_category_rules_from_config() -> None:
    rules = CategoryRules.from_config(DEFAULT_CONFIG)

    assert rules.keywords["dairy"] == "Dairy & Eggs"
    assert "customer service" in rules.deny_labels
    assert rules.link_exclude_fragments == ("#", "collapse", "criteo.com")
    assert "Soups, Broth & Chili" in rules.targets


def test_category_rules_accept_keyword_list() -> None:
    rules = CategoryRules.from_config({"categories": {"targets": ["Deli"], "keywords": ["DELI", " "]}})
    assert rules.keywords == {"deli": ""}
    assert rules.targets == ("Deli",)
