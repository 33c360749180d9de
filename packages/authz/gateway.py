"""Authorization gateway.

The single entry point used by the host application: maps an action to a
permission, applies the bootstrap and authentication pre-checks, and
delegates to the resolver. It never raises and never allows on failure.
"""

import logging

from packages.authz.actions import ActionTable
from packages.authz.engine import PermissionResolver
from packages.authz.models import (
    Actor,
    AuthorizationError,
    BootstrapGrant,
    Decision,
    DecisionReason,
    ResourceInstance,
)

logger = logging.getLogger(__name__)


class AuthorizationGateway:
    """Decides whether an actor may perform an action on a resource.

    Evaluation order:
    1. Map the action to (resource type, permission)
    2. Bootstrap identity: its one built-in grant, no store lookups
    3. Unauthenticated actors: only anonymous-accessible permissions
    4. Permission resolver
    5. Any failure: deny

    Usage:
        gateway = AuthorizationGateway(resolver, actions, bootstrap=DB_INIT_BOOTSTRAP)

        decision = await gateway.authorize(actor, "project.modify", project)
        if decision.allowed:
            # Proceed
        else:
            # Reject with decision.reason
    """

    def __init__(
        self,
        resolver: PermissionResolver,
        actions: ActionTable,
        bootstrap: BootstrapGrant | None = None,
    ):
        self.resolver = resolver
        self.actions = actions
        self.bootstrap = bootstrap

        registry = resolver.registry
        actions.validate_against(registry)
        self._bootstrap_permissions: frozenset[str] = frozenset()
        if bootstrap is not None:
            self._bootstrap_permissions = registry.permissions_of(
                bootstrap.instance.resource_type, bootstrap.role
            )

        logger.info(
            "AuthorizationGateway initialized with %d actions (bootstrap: %s)",
            len(actions),
            bootstrap.actor_id if bootstrap else "none",
        )

    async def authorize(
        self, actor: Actor, action: str, instance: ResourceInstance
    ) -> Decision:
        """Check whether ``actor`` may perform ``action`` on ``instance``.

        Returns:
            Decision with result and reason code
        """
        rule = self.actions.lookup(action)
        if rule is None:
            logger.warning("Access DENIED (unknown action): actor=%s action=%s", actor, action)
            return Decision.deny(DecisionReason.UNKNOWN_ACTION, action=action)

        permission = rule.permission
        if instance.resource_type != rule.resource_type:
            logger.warning(
                "Access DENIED (type mismatch): action=%s expects %s, got %s",
                action, rule.resource_type, instance
            )
            return Decision.deny(
                DecisionReason.RESOURCE_TYPE_MISMATCH,
                action=action,
                permission=permission,
            )

        if self._is_bootstrap(actor):
            return self._authorize_bootstrap(action, instance, permission)

        try:
            if not actor.authenticated and not self.resolver.registry.is_anonymous_permission(
                instance.resource_type, permission
            ):
                logger.info(
                    "Access DENIED (not authenticated): action=%s instance=%s",
                    action, instance
                )
                return Decision.deny(
                    DecisionReason.NOT_AUTHENTICATED,
                    action=action,
                    permission=permission,
                )

            decision = await self.resolver.resolve(actor, instance, permission)
        except AuthorizationError as e:
            logger.error(
                "Access DENIED (%s): actor=%s action=%s instance=%s: %s",
                e.code, actor, action, instance, e.message
            )
            return Decision.deny(
                DecisionReason.SCHEMA_ERROR,
                action=action,
                permission=permission,
            )
        except Exception:
            logger.exception(
                "Unexpected authorization error: actor=%s action=%s instance=%s",
                actor, action, instance
            )
            return Decision.deny(
                DecisionReason.INTERNAL_ERROR,
                action=action,
                permission=permission,
            )

        return decision.model_copy(update={"action": action})

    async def authorize_all(
        self, actor: Actor, actions: list[str], instance: ResourceInstance
    ) -> Decision:
        """Allow only if every action is allowed; returns the first denial."""
        if not actions:
            return Decision.deny(DecisionReason.UNKNOWN_ACTION)

        decision = None
        for action in actions:
            decision = await self.authorize(actor, action, instance)
            if not decision.allowed:
                return decision
        return decision

    async def authorize_any(
        self, actor: Actor, actions: list[str], instance: ResourceInstance
    ) -> Decision:
        """Allow if any action is allowed; returns the last denial otherwise."""
        decision = Decision.deny(DecisionReason.UNKNOWN_ACTION)
        for action in actions:
            decision = await self.authorize(actor, action, instance)
            if decision.allowed:
                return decision
        return decision

    def _is_bootstrap(self, actor: Actor) -> bool:
        return (
            self.bootstrap is not None
            and actor.authenticated
            and actor.identity == self.bootstrap.actor_id
        )

    def _authorize_bootstrap(
        self, action: str, instance: ResourceInstance, permission: str
    ) -> Decision:
        if instance == self.bootstrap.instance and permission in self._bootstrap_permissions:
            logger.debug(
                "Access ALLOWED (bootstrap): action=%s instance=%s", action, instance
            )
            return Decision.allow(
                DecisionReason.BOOTSTRAP,
                action=action,
                permission=permission,
                matched_role=self.bootstrap.role,
                matched_instance=instance,
            )

        logger.info("Access DENIED (bootstrap scope): action=%s instance=%s", action, instance)
        return Decision.deny(
            DecisionReason.NO_MATCHING_ROLE,
            action=action,
            permission=permission,
        )
