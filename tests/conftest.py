import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

_STORE_ENV_VARS = (
    "SOURCE_STORE",
    "PRODUCTION_STORE",
    "SHOPIFY_STORE",
    "SOURCE_ACCESS_TOKEN",
    "PRODUCTION_ACCESS_TOKEN",
    "PRODUCTION_ADMIN_API_TOKEN",
    "SHOPIFY_ACCESS_TOKEN",
    "TARGET_STORE",
    "STAGING_STORE",
    "SHOPIFY_FLAG_STORE",
    "TARGET_ACCESS_TOKEN",
    "STAGING_ACCESS_TOKEN",
    "STAGING_ADMIN_API_TOKEN",
    "GITHUB_OUTPUT",
)


@pytest.fixture(autouse=True)
def isolated_store_env(monkeypatch, tmp_path):
    for name in _STORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Settings also reads .env from the working directory.
    monkeypatch.chdir(tmp_path)
