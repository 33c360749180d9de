"""Timeout-bound lookups over the external stores.

``RelationGraph`` resolves parent instances and ``RoleAssignmentLookup``
resolves direct grants. Both turn every store failure, including a timeout,
into ``StoreUnavailable`` so the resolver can fail closed.
"""

import asyncio
import logging

from packages.authz.models import RelationMissing, ResourceInstance, StoreUnavailable
from packages.authz.schema import SchemaRegistry
from packages.authz.stores import RelationStore, RoleAssignmentStore

logger = logging.getLogger(__name__)


async def _bounded(operation: str, awaitable, timeout: float | None):
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("%s timed out after %ss", operation, timeout)
        raise StoreUnavailable(operation, "timed out")
    except Exception as e:
        logger.error("%s failed: %s", operation, e)
        raise StoreUnavailable(operation, str(e) or type(e).__name__) from e


class RelationGraph:
    """Parent lookups along declared relations."""

    def __init__(
        self,
        registry: SchemaRegistry,
        store: RelationStore,
        timeout_seconds: float | None = 2.0,
    ):
        self.registry = registry
        self.store = store
        self.timeout_seconds = timeout_seconds

    async def parent_of(
        self, instance: ResourceInstance, relation: str
    ) -> ResourceInstance | None:
        """Return the parent of ``instance`` along ``relation``, or None.

        A parent whose type differs from the declared parent type is
        reported as absent.

        Raises:
            SchemaError: If the relation is not declared on the type
            StoreUnavailable: If the store fails or times out
        """
        expected_type = self.registry.parent_type(instance.resource_type, relation)
        parent = await _bounded(
            f"parent_of({instance}, {relation})",
            self.store.parent_of(instance, relation),
            self.timeout_seconds,
        )
        if parent is None:
            return None
        if parent.resource_type != expected_type:
            logger.warning(
                "Ignoring parent %s of %s via %s: expected type %s",
                parent, instance, relation, expected_type
            )
            return None
        return parent

    async def require_parent(
        self, instance: ResourceInstance, relation: str
    ) -> ResourceInstance:
        """Like ``parent_of`` but raises RelationMissing when absent."""
        parent = await self.parent_of(instance, relation)
        if parent is None:
            raise RelationMissing(instance, relation)
        return parent


class RoleAssignmentLookup:
    """Direct role lookups, filtered to roles the type declares."""

    def __init__(
        self,
        registry: SchemaRegistry,
        store: RoleAssignmentStore,
        timeout_seconds: float | None = 2.0,
    ):
        self.registry = registry
        self.store = store
        self.timeout_seconds = timeout_seconds

    async def roles_of(self, actor_id: str, instance: ResourceInstance) -> frozenset[str]:
        """Return the declared roles directly granted to ``actor_id`` on ``instance``.

        Raises:
            StoreUnavailable: If the store fails or times out
        """
        roles = await _bounded(
            f"roles_of({actor_id}, {instance})",
            self.store.roles_of(actor_id, instance),
            self.timeout_seconds,
        )
        known = set()
        for role in roles or ():
            if self.registry.has_role(instance.resource_type, role):
                known.add(role)
            else:
                logger.warning(
                    "Ignoring undeclared role %s on %s for %s",
                    role, instance, actor_id
                )
        return frozenset(known)
