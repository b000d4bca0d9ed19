from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PLACEHOLDER_VALUES = {
    "source-store.myshopify.com",
    "target-store.myshopify.com",
    "source-access-token",
    "target-access-token",
}


class ConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class StoreCredentials:
    role: str
    shop_domain: str
    access_token: str


def normalize_shop_domain(value: str) -> str:
    cleaned = value.strip()
    for prefix in ("https://", "http://"):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
    return cleaned.rstrip("/")


def _is_placeholder(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered.startswith("your-") or lowered in _PLACEHOLDER_VALUES


class Settings(BaseSettings):
    SOURCE_STORE: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SOURCE_STORE", "PRODUCTION_STORE", "SHOPIFY_STORE"),
    )
    SOURCE_ACCESS_TOKEN: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SOURCE_ACCESS_TOKEN",
            "PRODUCTION_ACCESS_TOKEN",
            "PRODUCTION_ADMIN_API_TOKEN",
            "SHOPIFY_ACCESS_TOKEN",
        ),
    )
    TARGET_STORE: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TARGET_STORE", "STAGING_STORE", "SHOPIFY_FLAG_STORE"),
    )
    TARGET_ACCESS_TOKEN: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "TARGET_ACCESS_TOKEN",
            "STAGING_ACCESS_TOKEN",
            "STAGING_ADMIN_API_TOKEN",
        ),
    )
    SHOPIFY_ADMIN_API_VERSION: str = "2025-01"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0
    GITHUB_OUTPUT: Path | None = None

    @field_validator("SOURCE_STORE", "TARGET_STORE")
    @classmethod
    def validate_store(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = normalize_shop_domain(value)
        return cleaned or None

    @field_validator("SHOPIFY_ADMIN_API_VERSION")
    @classmethod
    def validate_api_version(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("SHOPIFY_ADMIN_API_VERSION must not be empty")
        return cleaned

    def source(self) -> StoreCredentials:
        return self._credentials(
            role="source",
            shop_domain=self.SOURCE_STORE,
            access_token=self.SOURCE_ACCESS_TOKEN,
            store_var="SOURCE_STORE (or PRODUCTION_STORE)",
            token_var="SOURCE_ACCESS_TOKEN (or PRODUCTION_ACCESS_TOKEN)",
        )

    def target(self) -> StoreCredentials:
        return self._credentials(
            role="target",
            shop_domain=self.TARGET_STORE,
            access_token=self.TARGET_ACCESS_TOKEN,
            store_var="TARGET_STORE (or STAGING_STORE)",
            token_var="TARGET_ACCESS_TOKEN (or STAGING_ACCESS_TOKEN)",
        )

    @staticmethod
    def _credentials(
        *,
        role: str,
        shop_domain: str | None,
        access_token: str | None,
        store_var: str,
        token_var: str,
    ) -> StoreCredentials:
        missing: list[str] = []
        if not shop_domain or _is_placeholder(shop_domain):
            missing.append(store_var)
        if not access_token or not access_token.strip() or _is_placeholder(access_token):
            missing.append(token_var)
        if missing:
            raise ConfigurationError(
                f"Missing {role} store configuration. Please set: {', '.join(missing)}"
            )
        return StoreCredentials(role=role, shop_domain=shop_domain, access_token=access_token.strip())

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


def get_settings() -> Settings:
    return Settings()
