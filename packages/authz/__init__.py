"""Hierarchical authorization package.

Resolves permissions from roles granted on resource instances, role
implication rules declared per resource type, and role inheritance along
parent relations (fleet -> organization -> project).

Usage:
    from packages.authz import AuthzSettings, create_gateway

    gateway = create_gateway(AuthzSettings(), role_store, relation_store)

    decision = await gateway.authorize(actor, "project.modify", project)
    if decision.allowed:
        # Allowed
        pass
"""

import logging

from packages.authz.actions import ActionRule, ActionTable
from packages.authz.cache import DecisionCache
from packages.authz.config import AuthzSettings
from packages.authz.engine import PermissionResolver
from packages.authz.gateway import AuthorizationGateway
from packages.authz.graph import RelationGraph, RoleAssignmentLookup
from packages.authz.models import (
    Actor,
    AuthorizationError,
    BootstrapGrant,
    Decision,
    DecisionReason,
    NotAuthenticated,
    RelationMissing,
    ResourceInstance,
    RoleAssignment,
    SchemaError,
    StoreUnavailable,
)
from packages.authz.schema import Relation, ResourceType, RoleInheritance, SchemaRegistry
from packages.authz.stores import (
    InMemoryRelationStore,
    InMemoryRoleStore,
    RelationStore,
    RoleAssignmentStore,
)

__all__ = [
    "ActionRule",
    "ActionTable",
    "Actor",
    "AuthorizationError",
    "AuthorizationGateway",
    "AuthzSettings",
    "BootstrapGrant",
    "Decision",
    "DecisionCache",
    "DecisionReason",
    "InMemoryRelationStore",
    "InMemoryRoleStore",
    "NotAuthenticated",
    "PermissionResolver",
    "Relation",
    "RelationGraph",
    "RelationMissing",
    "RelationStore",
    "ResourceInstance",
    "ResourceType",
    "RoleAssignment",
    "RoleAssignmentLookup",
    "RoleAssignmentStore",
    "RoleInheritance",
    "SchemaError",
    "SchemaRegistry",
    "StoreUnavailable",
    "create_gateway",
]

logger = logging.getLogger(__name__)


def create_gateway(
    settings: AuthzSettings,
    role_store: RoleAssignmentStore,
    relation_store: RelationStore,
    actions: ActionTable | None = None,
    bootstrap: BootstrapGrant | None = None,
    registry: SchemaRegistry | None = None,
) -> AuthorizationGateway:
    """Wire a gateway from settings and the external stores.

    Without an explicit registry the rules come from ``settings.schema_path``
    or, when unset, the built-in rule set. Without explicit actions or
    bootstrap grant the built-in ones are used.

    Raises:
        SchemaError: If the rules or the action table are invalid
    """
    from packages.authz import defaults
    from packages.authz.loader import load_schema_file

    if registry is None:
        if settings.schema_path:
            registry = load_schema_file(settings.schema_path)
        else:
            registry = defaults.default_registry()

    cache = None
    if settings.cache_enabled:
        cache = DecisionCache(
            default_ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        )
        if isinstance(role_store, InMemoryRoleStore):
            role_store.subscribe(cache.invalidate)
        else:
            logger.warning(
                "Decision cache enabled but %s does not publish changes; "
                "call DecisionCache.invalidate on every grant change",
                type(role_store).__name__
            )

    resolver = PermissionResolver(
        registry,
        RoleAssignmentLookup(registry, role_store, settings.store_timeout_seconds),
        RelationGraph(registry, relation_store, settings.store_timeout_seconds),
        max_depth=settings.max_depth,
        cache=cache,
    )
    return AuthorizationGateway(
        resolver,
        actions if actions is not None else defaults.DEFAULT_ACTIONS,
        bootstrap=bootstrap if bootstrap is not None else defaults.DB_INIT_BOOTSTRAP,
    )
