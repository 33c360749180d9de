"""Permission resolution engine.

Answers "does actor X hold permission P on instance I" by combining the
registry's precomputed tables with direct role grants and role inheritance
along parent relations.
"""

import logging
from collections import deque
from dataclasses import dataclass, field

from packages.authz.cache import DecisionCache
from packages.authz.graph import RelationGraph, RoleAssignmentLookup
from packages.authz.models import (
    Actor,
    Decision,
    DecisionReason,
    RelationMissing,
    ResourceInstance,
    StoreUnavailable,
)
from packages.authz.schema import SchemaRegistry

logger = logging.getLogger(__name__)

# Most specific first; used to report why no path allowed
_DENY_PRECEDENCE = (
    DecisionReason.CYCLE_DETECTED,
    DecisionReason.DEPTH_EXCEEDED,
    DecisionReason.RELATION_MISSING,
)


@dataclass
class _Resolution:
    """Per-call bookkeeping for one resolution."""

    # instance -> roles already checked there
    visited: dict[ResourceInstance, frozenset[str]] = field(default_factory=dict)
    failures: set[DecisionReason] = field(default_factory=set)

    def deny_reason(self) -> DecisionReason:
        for reason in _DENY_PRECEDENCE:
            if reason in self.failures:
                return reason
        return DecisionReason.NO_MATCHING_ROLE


class PermissionResolver:
    """Resolves permissions over a resource hierarchy.

    Resolution walks up the hierarchy iteratively. Each step looks up the
    actor's direct roles on one instance, closes them under role
    implication, and checks them against the roles wanted at that level.
    Relations whose inheritance rules could produce a wanted role are
    followed to the parent, where the wanted set becomes the parent roles
    named by those rules. Each instance's grants are fetched at most once per
    call, a parent pointer back into the current path counts as a cycle, and
    ascent stops at ``max_depth``.

    Every failure (store error, timeout, missing parent, cycle) denies; none
    of them is raised to the caller. Unknown types or permissions are
    programming errors and raise SchemaError.

    Usage:
        resolver = PermissionResolver(registry, role_lookup, relation_graph)

        if await resolver.has_permission(actor, project, "modify"):
            # Proceed
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        roles: RoleAssignmentLookup,
        relations: RelationGraph,
        max_depth: int = 8,
        cache: DecisionCache | None = None,
    ):
        if not registry.is_loaded:
            registry.validate()
        self.registry = registry
        self.roles = roles
        self.relations = relations
        self.max_depth = max_depth
        self.cache = cache

    async def has_permission(
        self, actor: Actor, instance: ResourceInstance, permission: str
    ) -> bool:
        """Check whether ``actor`` holds ``permission`` on ``instance``."""
        decision = await self.resolve(actor, instance, permission)
        return decision.allowed

    async def resolve(
        self, actor: Actor, instance: ResourceInstance, permission: str
    ) -> Decision:
        """Resolve ``permission`` on ``instance`` for ``actor``.

        Returns:
            Decision with result and reason code

        Raises:
            SchemaError: If the type or permission is not declared
        """
        type_name = instance.resource_type
        wanted = self.registry.roles_granting(type_name, permission)

        if not actor.authenticated:
            if self.registry.is_anonymous_permission(type_name, permission):
                return Decision.allow(DecisionReason.ANONYMOUS, permission=permission)
            return Decision.deny(DecisionReason.NOT_AUTHENTICATED, permission=permission)

        generation = None
        if self.cache is not None:
            cached = self.cache.get(actor.identity, instance, permission)
            if cached is not None:
                return cached
            generation = self.cache.generation()

        state = _Resolution()
        try:
            decision = await self._ascend(actor.identity, instance, wanted, state)
        except StoreUnavailable as e:
            logger.error(
                "Denying %s on %s for %s: %s",
                permission, instance, actor, e.message
            )
            return Decision.deny(DecisionReason.STORE_UNAVAILABLE, permission=permission)

        if decision is None:
            decision = Decision.deny(state.deny_reason(), permission=permission)
            logger.info(
                "Access DENIED (%s): actor=%s permission=%s instance=%s",
                decision.reason.value, actor, permission, instance
            )
        else:
            decision = decision.model_copy(update={"permission": permission})
            logger.debug(
                "Access ALLOWED by role %s on %s: actor=%s permission=%s instance=%s",
                decision.matched_role, decision.matched_instance,
                actor, permission, instance
            )

        if self.cache is not None:
            self.cache.set(
                actor.identity, instance, permission, decision, set(state.visited),
                generation=generation,
            )
        return decision

    async def effective_roles(
        self, actor: Actor, instance: ResourceInstance
    ) -> frozenset[str]:
        """Return every role ``actor`` holds on ``instance``, direct or inherited.

        Raises:
            StoreUnavailable: If a lookup fails (diagnostic use only)
        """
        if not actor.authenticated:
            return frozenset()

        type_name = instance.resource_type
        all_roles = self.registry.get(type_name).roles
        state = _Resolution()
        held = set()
        for role in all_roles:
            if role in held:
                continue
            state.visited.clear()
            found = await self._ascend(actor.identity, instance, frozenset([role]), state)
            if found is not None:
                held |= self.registry.role_closure(type_name, role)
        return frozenset(held)

    async def _ascend(
        self,
        actor_id: str,
        target: ResourceInstance,
        wanted: frozenset[str],
        state: _Resolution,
    ) -> Decision | None:
        """Breadth-first ascent from ``target``; returns an Allow or None."""
        if not wanted:
            return None

        # Entries carry the instances below them on their path, so a parent
        # pointer leading back down the path is recognized as a cycle.
        queue = deque([(target, wanted, frozenset())])
        direct_roles: dict[ResourceInstance, frozenset[str]] = {}
        while queue:
            instance, wanted_here, path = queue.popleft()

            if instance in path:
                logger.warning(
                    "Cycle detected at %s while resolving %s for %s",
                    instance, target, actor_id
                )
                state.failures.add(DecisionReason.CYCLE_DETECTED)
                continue
            if len(path) > self.max_depth:
                logger.warning(
                    "Hierarchy deeper than %d at %s while resolving %s",
                    self.max_depth, instance, target
                )
                state.failures.add(DecisionReason.DEPTH_EXCEEDED)
                continue

            # Reached again through another relation: only check new roles
            checked = state.visited.get(instance, frozenset())
            wanted_here = wanted_here - checked
            if not wanted_here:
                continue
            state.visited[instance] = checked | wanted_here

            type_name = instance.resource_type
            if instance not in direct_roles:
                direct = await self.roles.roles_of(actor_id, instance)
                direct_roles[instance] = self.registry.expand(type_name, direct)
            held = direct_roles[instance] & wanted_here
            if held:
                return Decision.allow(
                    DecisionReason.INHERITED_ROLE if path else DecisionReason.DIRECT_ROLE,
                    matched_role=min(held),
                    matched_instance=instance,
                )

            sources = self.registry.inherited_sources(type_name, wanted_here)
            for relation in sorted(sources):
                try:
                    parent = await self.relations.require_parent(instance, relation)
                except RelationMissing as e:
                    logger.warning("Denying inherited path: %s", e.message)
                    state.failures.add(DecisionReason.RELATION_MISSING)
                    continue
                queue.append((parent, sources[relation], path | {instance}))

        return None
