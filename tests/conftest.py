"""Shared fixtures over the default rule set."""

import pytest

from packages.authz.defaults import default_registry
from packages.authz.stores import InMemoryRoleStore
from tests.authz_helpers import fleet_relations, make_resolver


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def relation_store():
    return fleet_relations()


@pytest.fixture
def role_store():
    return InMemoryRoleStore()


@pytest.fixture
def resolver(registry, role_store, relation_store):
    return make_resolver(registry, role_store, relation_store)
