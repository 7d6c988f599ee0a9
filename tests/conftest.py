"""
Shared fixtures for skills registry tests
"""

import pytest
import yaml

from skills_registry import CapabilityRegistry, SkillsConfigStore

from mocks import MockMcpManager, MockToolProvider


@pytest.fixture
def store(tmp_path):
    """Config store backed by <tmp_path>/data/skills.yaml"""
    return SkillsConfigStore.for_plugin_root(tmp_path)


@pytest.fixture
def write_config(store):
    """Write a user document to the store's backing file"""

    def _write(skills):
        store.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(store.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"skills": skills}, f, sort_keys=False)
        return store.config_path

    return _write


@pytest.fixture
def provider():
    return MockToolProvider()


@pytest.fixture
def mcp():
    return MockMcpManager()


@pytest.fixture
def registry(store, provider, mcp):
    return CapabilityRegistry(store, provider, mcp)
