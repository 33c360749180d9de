"""External store interfaces for role assignments and resource relations.

Both stores are owned by outside domain services; the engine only reads
them. The in-memory implementations are used for development and tests.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

from packages.authz.models import ResourceInstance, RoleAssignment

logger = logging.getLogger(__name__)

AssignmentListener = Callable[[ResourceInstance], None]


class RoleAssignmentStore(ABC):
    """Source of direct role grants.

    Implementations may perform I/O. They signal failure by raising; the
    engine maps every failure to a denial.
    """

    @abstractmethod
    async def roles_of(self, actor_id: str, instance: ResourceInstance) -> set[str]:
        """Return the roles directly granted to ``actor_id`` on ``instance``."""
        pass


class RelationStore(ABC):
    """Source of parent pointers between resource instances."""

    @abstractmethod
    async def parent_of(
        self, instance: ResourceInstance, relation: str
    ) -> ResourceInstance | None:
        """Return the parent of ``instance`` along ``relation``, if any."""
        pass


class InMemoryRoleStore(RoleAssignmentStore):
    """Thread-safe in-memory role assignment store.

    Subscribers are called with the affected instance after every grant or
    revoke, which is how a decision cache learns to invalidate.
    """

    def __init__(self, assignments: list[RoleAssignment] | None = None):
        self._lock = threading.Lock()
        self._grants: dict[tuple[str, ResourceInstance], set[str]] = {}
        self._listeners: list[AssignmentListener] = []

        for assignment in assignments or []:
            self.grant(assignment.actor_id, assignment.instance, assignment.role)

    def subscribe(self, listener: AssignmentListener) -> None:
        """Register a callback invoked whenever grants on an instance change."""
        self._listeners.append(listener)

    def grant(self, actor_id: str, instance: ResourceInstance, role: str) -> bool:
        """Grant a role. Returns False if it was already granted."""
        with self._lock:
            roles = self._grants.setdefault((actor_id, instance), set())
            if role in roles:
                return False
            roles.add(role)

        logger.debug("Granted role %s on %s to %s", role, instance, actor_id)
        self._notify(instance)
        return True

    def revoke(self, actor_id: str, instance: ResourceInstance, role: str) -> bool:
        """Revoke a role. Returns False if it was not granted."""
        with self._lock:
            roles = self._grants.get((actor_id, instance))
            if not roles or role not in roles:
                return False
            roles.remove(role)
            if not roles:
                del self._grants[(actor_id, instance)]

        logger.debug("Revoked role %s on %s from %s", role, instance, actor_id)
        self._notify(instance)
        return True

    async def roles_of(self, actor_id: str, instance: ResourceInstance) -> set[str]:
        with self._lock:
            return set(self._grants.get((actor_id, instance), ()))

    def _notify(self, instance: ResourceInstance) -> None:
        for listener in self._listeners:
            listener(instance)


class InMemoryRelationStore(RelationStore):
    """In-memory parent pointers.

    A pointer is set once when the child is created and never reassigned.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._parents: dict[tuple[ResourceInstance, str], ResourceInstance] = {}

    def link(
        self,
        child: ResourceInstance,
        relation: str,
        parent: ResourceInstance,
    ) -> None:
        """Record ``parent`` as the parent of ``child`` along ``relation``.

        Raises:
            ValueError: If the child already has a different parent there.
        """
        key = (child, relation)
        with self._lock:
            existing = self._parents.get(key)
            if existing is not None and existing != parent:
                raise ValueError(
                    f"{child} already has parent {existing} via '{relation}'"
                )
            self._parents[key] = parent

    async def parent_of(
        self, instance: ResourceInstance, relation: str
    ) -> ResourceInstance | None:
        with self._lock:
            return self._parents.get((instance, relation))
