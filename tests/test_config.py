from __future__ import annotations

import pytest

from shopify_file_sync.config import ConfigurationError, Settings, normalize_shop_domain


def test_normalize_shop_domain_strips_scheme_and_slash():
    assert normalize_shop_domain(" https://prod.myshopify.com/ ") == "prod.myshopify.com"
    assert normalize_shop_domain("http://staging.myshopify.com") == "staging.myshopify.com"


def test_settings_read_production_and_staging_aliases(monkeypatch):
    monkeypatch.setenv("PRODUCTION_STORE", "https://prod.myshopify.com")
    monkeypatch.setenv("PRODUCTION_ADMIN_API_TOKEN", "shpat_prod")
    monkeypatch.setenv("SHOPIFY_FLAG_STORE", "staging.myshopify.com")
    monkeypatch.setenv("STAGING_ADMIN_API_TOKEN", "shpat_staging")

    settings = Settings()

    source = settings.source()
    target = settings.target()
    assert (source.shop_domain, source.access_token) == ("prod.myshopify.com", "shpat_prod")
    assert (target.shop_domain, target.access_token) == ("staging.myshopify.com", "shpat_staging")
    assert settings.SHOPIFY_ADMIN_API_VERSION == "2025-01"


def test_source_and_target_names_take_precedence(monkeypatch):
    monkeypatch.setenv("SOURCE_STORE", "source-a.myshopify.com")
    monkeypatch.setenv("PRODUCTION_STORE", "prod.myshopify.com")

    assert Settings().SOURCE_STORE == "source-a.myshopify.com"


def test_missing_credentials_raise_configuration_error(monkeypatch):
    monkeypatch.setenv("TARGET_STORE", "staging.myshopify.com")

    with pytest.raises(ConfigurationError, match="TARGET_ACCESS_TOKEN"):
        Settings().target()


@pytest.mark.parametrize(
    ("store", "token"),
    [
        ("your-production-store.myshopify.com", "shpat_real"),
        ("prod.myshopify.com", "your-production-access-token"),
        ("source-store.myshopify.com", "shpat_real"),
        ("prod.myshopify.com", "source-access-token"),
    ],
)
def test_placeholder_values_are_rejected(monkeypatch, store, token):
    monkeypatch.setenv("SOURCE_STORE", store)
    monkeypatch.setenv("SOURCE_ACCESS_TOKEN", token)

    with pytest.raises(ConfigurationError, match="Missing source store configuration"):
        Settings().source()


def test_settings_can_be_built_explicitly():
    settings = Settings(
        TARGET_STORE="staging.myshopify.com",
        TARGET_ACCESS_TOKEN="shpat_staging",
        SHOPIFY_ADMIN_API_VERSION="2025-04",
    )

    assert settings.target().role == "target"
    assert settings.SHOPIFY_ADMIN_API_VERSION == "2025-04"
