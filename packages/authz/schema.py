"""Resource type schema and the registry that precomputes its closures.

Each resource type declares its permissions, roles, the role-implies-permission
and role-implies-role rules, and relations to parent types along which roles
are inherited. The registry validates everything once at startup and turns
the declarations into lookup tables, so request-time checks are set
membership tests rather than graph walks.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from packages.authz.models import SchemaError

logger = logging.getLogger(__name__)


class RoleInheritance(BaseModel):
    """``role`` holds on the child if ``parent_role`` holds on the parent."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(description="Role granted on the child instance")
    parent_role: str = Field(description="Role required on the parent instance")


class Relation(BaseModel):
    """A functional link from a child type to one parent type."""

    model_config = ConfigDict(frozen=True)

    parent_type: str = Field(description="Resource type of the parent instance")
    rules: tuple[RoleInheritance, ...] = Field(
        default=(),
        description="Roles inherited from the parent along this relation"
    )


class ResourceType(BaseModel):
    """Immutable schema of one kind of resource.

    Resource kinds share behavior through this data description, not through
    subclassing: every instance refers to its type by name.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unique resource type name")
    permissions: tuple[str, ...] = Field(default=(), description="Permission names")
    roles: tuple[str, ...] = Field(default=(), description="Role names")
    role_permissions: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Permissions granted directly by each role"
    )
    role_implications: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Roles implied by each role (within this type)"
    )
    relations: dict[str, Relation] = Field(
        default_factory=dict,
        description="Named relations to parent types"
    )
    anonymous_permissions: tuple[str, ...] = Field(
        default=(),
        description="Permissions granted to unauthenticated actors"
    )


@dataclass(frozen=True)
class _TypeTables:
    """Precomputed lookup tables for one resource type."""

    resource_type: ResourceType
    closure: Mapping[str, frozenset[str]]
    granting: Mapping[str, frozenset[str]]
    sources: Mapping[str, Mapping[str, frozenset[str]]]
    anonymous: frozenset[str]


class SchemaRegistry:
    """Registry of resource types.

    Lifecycle is one-way: types are registered, then ``validate()`` checks
    the schema and builds the tables. After that the registry is read-only
    and may be shared across any number of concurrent resolutions.

    Usage:
        registry = SchemaRegistry()
        registry.register(fleet_type)
        registry.register(organization_type)
        registry.validate()

        registry.roles_granting("organization", "modify")
    """

    def __init__(self):
        self._declared: dict[str, ResourceType] = {}
        self._tables: Mapping[str, _TypeTables] = MappingProxyType({})
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def type_names(self) -> frozenset[str]:
        return frozenset(self._declared)

    def register(self, resource_type: ResourceType) -> ResourceType:
        """Register a resource type. Only allowed before ``validate()``."""
        if self._loaded:
            raise SchemaError(
                f"Cannot register '{resource_type.name}': schema already loaded"
            )
        if not resource_type.name:
            raise SchemaError("Resource type name must not be empty")
        if resource_type.name in self._declared:
            raise SchemaError(f"Duplicate resource type: {resource_type.name}")

        # Private copy: later changes to the caller's dicts cannot reach the tables
        self._declared[resource_type.name] = resource_type.model_copy(deep=True)
        logger.debug("Registered resource type: %s", resource_type.name)
        return resource_type

    def validate(self) -> None:
        """Validate the schema and precompute closures.

        Raises:
            SchemaError: On dangling references, duplicate names, or any
                cycle in a role-implication graph or in the type-level
                relation graph.
        """
        if self._loaded:
            return

        for resource_type in self._declared.values():
            self._check_references(resource_type)
        self._check_relation_graph()

        tables = {}
        for name, resource_type in self._declared.items():
            tables[name] = self._build_tables(resource_type)

        self._tables = MappingProxyType(tables)
        self._loaded = True
        logger.info("Authorization schema loaded with %d resource types", len(tables))

    # =========================================================================
    # Validation
    # =========================================================================

    def _check_references(self, rt: ResourceType) -> None:
        _require_unique(rt.name, "permission", rt.permissions)
        _require_unique(rt.name, "role", rt.roles)

        permissions = set(rt.permissions)
        roles = set(rt.roles)

        for role, granted in rt.role_permissions.items():
            if role not in roles:
                raise SchemaError(f"{rt.name}: unknown role '{role}' in role_permissions")
            for permission in granted:
                if permission not in permissions:
                    raise SchemaError(
                        f"{rt.name}: role '{role}' grants unknown permission '{permission}'"
                    )

        for role, implied in rt.role_implications.items():
            if role not in roles:
                raise SchemaError(f"{rt.name}: unknown role '{role}' in role_implications")
            for other in implied:
                if other not in roles:
                    raise SchemaError(f"{rt.name}: role '{role}' implies unknown role '{other}'")

        for permission in rt.anonymous_permissions:
            if permission not in permissions:
                raise SchemaError(
                    f"{rt.name}: unknown anonymous permission '{permission}'"
                )

        for relation_name, relation in rt.relations.items():
            parent = self._declared.get(relation.parent_type)
            if parent is None:
                raise SchemaError(
                    f"{rt.name}.{relation_name}: unknown parent type '{relation.parent_type}'"
                )
            for rule in relation.rules:
                if rule.role not in roles:
                    raise SchemaError(
                        f"{rt.name}.{relation_name}: unknown role '{rule.role}'"
                    )
                if rule.parent_role not in parent.roles:
                    raise SchemaError(
                        f"{rt.name}.{relation_name}: parent type '{parent.name}' "
                        f"has no role '{rule.parent_role}'"
                    )

    def _check_relation_graph(self) -> None:
        edges = {
            name: [relation.parent_type for relation in rt.relations.values()]
            for name, rt in self._declared.items()
        }
        _find_cycles("relation graph", edges)

    def _build_tables(self, rt: ResourceType) -> _TypeTables:
        edges = {role: list(rt.role_implications.get(role, ())) for role in rt.roles}
        _find_cycles(f"{rt.name} role implications", edges)

        closure: dict[str, frozenset[str]] = {}
        for role in sorted(rt.roles):
            closure[role] = _closure_of(role, edges, closure)

        granting = {}
        for permission in rt.permissions:
            grantors = {
                role for role, granted in rt.role_permissions.items()
                if permission in granted
            }
            granting[permission] = frozenset(
                role for role in rt.roles if closure[role] & grantors
            )

        # For each role R and relation r: parent roles that make R hold here
        sources: dict[str, dict[str, frozenset[str]]] = {}
        for target in rt.roles:
            per_relation = {}
            for relation_name, relation in rt.relations.items():
                parent_roles = frozenset(
                    rule.parent_role for rule in relation.rules
                    if target in closure[rule.role]
                )
                if parent_roles:
                    per_relation[relation_name] = parent_roles
            sources[target] = MappingProxyType(per_relation)

        return _TypeTables(
            resource_type=rt,
            closure=MappingProxyType(closure),
            granting=MappingProxyType(granting),
            sources=MappingProxyType(sources),
            anonymous=frozenset(rt.anonymous_permissions),
        )

    # =========================================================================
    # Lookups (read-only after validate)
    # =========================================================================

    def _get_tables(self, type_name: str) -> _TypeTables:
        if not self._loaded:
            raise SchemaError("Authorization schema has not been loaded")
        tables = self._tables.get(type_name)
        if tables is None:
            raise SchemaError(f"Unknown resource type: {type_name}")
        return tables

    def get(self, type_name: str) -> ResourceType:
        """Get a copy of the declaration of a resource type."""
        return self._get_tables(type_name).resource_type.model_copy(deep=True)

    def has_role(self, type_name: str, role: str) -> bool:
        return role in self._get_tables(type_name).closure

    def has_permission_name(self, type_name: str, permission: str) -> bool:
        return permission in self._get_tables(type_name).granting

    def role_closure(self, type_name: str, role: str) -> frozenset[str]:
        """Return ``role`` plus every role it implies, transitively."""
        closure = self._get_tables(type_name).closure.get(role)
        if closure is None:
            raise SchemaError(f"Unknown role '{role}' on type '{type_name}'")
        return closure

    def expand(self, type_name: str, roles: Iterable[str]) -> frozenset[str]:
        """Close a role set under role implication. Idempotent."""
        closure = self._get_tables(type_name).closure
        expanded: set[str] = set()
        for role in roles:
            if role not in closure:
                raise SchemaError(f"Unknown role '{role}' on type '{type_name}'")
            expanded |= closure[role]
        return frozenset(expanded)

    def roles_granting(self, type_name: str, permission: str) -> frozenset[str]:
        """Return every role on ``type_name`` that implies ``permission``."""
        granting = self._get_tables(type_name).granting.get(permission)
        if granting is None:
            raise SchemaError(f"Unknown permission '{permission}' on type '{type_name}'")
        return granting

    def permissions_of(self, type_name: str, role: str) -> frozenset[str]:
        """Return every permission held through ``role``."""
        tables = self._get_tables(type_name)
        self.role_closure(type_name, role)
        return frozenset(
            permission for permission, roles in tables.granting.items()
            if role in roles
        )

    def inherited_sources(
        self, type_name: str, roles: Iterable[str]
    ) -> dict[str, frozenset[str]]:
        """Map each relation to the parent roles that yield any of ``roles`` here."""
        sources = self._get_tables(type_name).sources
        result: dict[str, set[str]] = {}
        for role in roles:
            for relation_name, parent_roles in sources.get(role, {}).items():
                result.setdefault(relation_name, set()).update(parent_roles)
        return {name: frozenset(parents) for name, parents in result.items()}

    def parent_type(self, type_name: str, relation_name: str) -> str:
        relation = self._get_tables(type_name).resource_type.relations.get(relation_name)
        if relation is None:
            raise SchemaError(f"Unknown relation '{relation_name}' on type '{type_name}'")
        return relation.parent_type

    def is_anonymous_permission(self, type_name: str, permission: str) -> bool:
        self.roles_granting(type_name, permission)
        return permission in self._get_tables(type_name).anonymous


def _require_unique(type_name: str, kind: str, names: tuple[str, ...]) -> None:
    seen = set()
    for name in names:
        if not name:
            raise SchemaError(f"{type_name}: empty {kind} name")
        if name in seen:
            raise SchemaError(f"{type_name}: duplicate {kind} '{name}'")
        seen.add(name)


def _find_cycles(label: str, edges: Mapping[str, list[str]]) -> None:
    """Raise SchemaError if the directed graph ``edges`` has a cycle."""
    done: set[str] = set()

    for start in sorted(edges):
        if start in done:
            continue
        # Iterative DFS; ``path`` holds the nodes on the current branch
        path: list[str] = [start]
        on_path = {start}
        pending = [iter(sorted(edges.get(start, ())))]
        while pending:
            node = next(pending[-1], None)
            if node is None:
                pending.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if node in on_path:
                cycle = path[path.index(node):] + [node]
                raise SchemaError(f"Cycle in {label}: {' -> '.join(cycle)}")
            if node in done:
                continue
            path.append(node)
            on_path.add(node)
            pending.append(iter(sorted(edges.get(node, ()))))


def _closure_of(
    role: str,
    edges: Mapping[str, list[str]],
    memo: dict[str, frozenset[str]],
) -> frozenset[str]:
    if role in memo:
        return memo[role]
    result = {role}
    for implied in edges.get(role, ()):
        result |= _closure_of(implied, edges, memo)
    memo[role] = frozenset(result)
    return memo[role]
