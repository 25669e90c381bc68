"""
Shared fixtures for unit tests.
"""

import os

import pytest

from dpc.infrastructure.catalog_store import CatalogStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path_factory, monkeypatch):
    """Keep DPC_* variables and user config/data directories out of tests."""
    for name in list(os.environ):
        if name.startswith("DPC_"):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / "data"))


@pytest.fixture
def store(tmp_path):
    """A fresh catalog in a temporary directory."""
    catalog = CatalogStore(tmp_path / "catalog.db")
    yield catalog
    catalog.close()
