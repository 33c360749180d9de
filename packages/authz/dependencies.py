"""FastAPI dependency helpers.

The host application stores the gateway on ``app.state.authz_gateway``; the
identity middleware stores the caller on ``request.state.actor``.
"""

from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status

from packages.authz.gateway import AuthorizationGateway
from packages.authz.models import (
    Actor,
    Decision,
    DecisionReason,
    NotAuthenticated,
    ResourceInstance,
)

ResourceResolver = Callable[..., ResourceInstance | Awaitable[ResourceInstance]]


def get_gateway(request: Request) -> AuthorizationGateway:
    """FastAPI dependency returning the application's gateway."""
    gateway = getattr(request.app.state, "authz_gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "authorization_unavailable",
                "message": "Authorization is not configured",
            }
        )
    return gateway


def get_actor(request: Request) -> Actor:
    """FastAPI dependency returning the caller, anonymous when unidentified."""
    actor = getattr(request.state, "actor", None)
    return actor if actor is not None else Actor.anonymous()


def require_action(action: str, resource: ResourceResolver):
    """FastAPI dependency to require an action on a resource.

    ``resource`` is itself a dependency (it may take path parameters) that
    returns the target ResourceInstance.

    Usage:
        def project_from_path(project_id: str) -> ResourceInstance:
            return ResourceInstance(resource_type="project", resource_id=project_id)

        @app.put("/projects/{project_id}")
        async def update_project(
            project_id: str,
            _: Decision = Depends(require_action("project.modify", project_from_path))
        ):
            pass
    """

    async def check(
        actor: Actor = Depends(get_actor),
        instance: ResourceInstance = Depends(resource),
        gateway: AuthorizationGateway = Depends(get_gateway),
    ) -> Decision:
        decision = await gateway.authorize(actor, action, instance)

        if not decision.allowed:
            if decision.reason == DecisionReason.NOT_AUTHENTICATED:
                error = NotAuthenticated()
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail={
                        "error": error.code,
                        "message": error.message,
                        "action": action,
                    },
                    headers={"WWW-Authenticate": "Bearer"},
                )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "forbidden",
                    "message": f"Action '{action}' is not permitted",
                    "action": action,
                }
            )

        return decision

    return check
