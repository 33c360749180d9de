"""Authorization data models.

Defines actors, resource instances, decisions and the error taxonomy.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Actor(BaseModel):
    """The principal requesting an action.

    Either anonymous (no identity) or authenticated with a stable identity
    supplied by the identity source.
    """

    model_config = ConfigDict(frozen=True)

    authenticated: bool = Field(default=False, description="Whether identity was verified")
    identity: str | None = Field(default=None, description="Stable actor identifier")

    @model_validator(mode="after")
    def validate_identity(self) -> "Actor":
        """Authenticated actors carry an identity; anonymous ones never do."""
        if self.authenticated and not self.identity:
            raise ValueError("An authenticated actor requires an identity")
        if not self.authenticated and self.identity is not None:
            raise ValueError("An anonymous actor cannot carry an identity")
        return self

    @classmethod
    def anonymous(cls) -> "Actor":
        return cls(authenticated=False, identity=None)

    @classmethod
    def from_identity(cls, identity: str) -> "Actor":
        return cls(authenticated=True, identity=identity)

    def __str__(self) -> str:
        return self.identity if self.authenticated else "<anonymous>"


class ResourceInstance(BaseModel):
    """A typed resource identifier, e.g. ``project:p1``."""

    model_config = ConfigDict(frozen=True)

    resource_type: str = Field(description="Name of the resource type")
    resource_id: str = Field(description="Identifier unique within the type")

    def __str__(self) -> str:
        return f"{self.resource_type}:{self.resource_id}"


class RoleAssignment(BaseModel):
    """A direct grant of a role to an actor on one resource instance."""

    model_config = ConfigDict(frozen=True)

    actor_id: str
    instance: ResourceInstance
    role: str


class BootstrapGrant(BaseModel):
    """The single built-in grant held by the bootstrap identity.

    The bootstrap identity is not stored in the identity store or the role
    store. It holds exactly one role on exactly one resource instance.
    """

    model_config = ConfigDict(frozen=True)

    actor_id: str = Field(description="Identity of the bootstrap actor")
    instance: ResourceInstance = Field(description="The well-known singleton resource")
    role: str = Field(description="The one role held on that resource")


class DecisionReason(str, Enum):
    """Reason codes attached to decisions for diagnostics."""

    # Allow
    DIRECT_ROLE = "direct_role"
    INHERITED_ROLE = "inherited_role"
    BOOTSTRAP = "bootstrap"
    ANONYMOUS = "anonymous"

    # Deny
    NOT_AUTHENTICATED = "not_authenticated"
    NO_MATCHING_ROLE = "no_matching_role"
    RELATION_MISSING = "relation_missing"
    STORE_UNAVAILABLE = "store_unavailable"
    CYCLE_DETECTED = "cycle_detected"
    DEPTH_EXCEEDED = "depth_exceeded"
    UNKNOWN_ACTION = "unknown_action"
    RESOURCE_TYPE_MISMATCH = "resource_type_mismatch"
    SCHEMA_ERROR = "schema_error"
    INTERNAL_ERROR = "internal_error"


class Decision(BaseModel):
    """Result of an authorization decision."""

    model_config = ConfigDict(frozen=True)

    allowed: bool = Field(description="Whether access is allowed")
    reason: DecisionReason = Field(description="Why the decision was reached")
    permission: str | None = Field(default=None, description="Permission that was checked")
    action: str | None = Field(default=None, description="Application action, if any")
    matched_role: str | None = Field(
        default=None,
        description="Role that granted the permission (if allowed via a role)"
    )
    matched_instance: ResourceInstance | None = Field(
        default=None,
        description="Instance on which the matching role was held"
    )

    @classmethod
    def allow(cls, reason: DecisionReason, **kwargs) -> "Decision":
        return cls(allowed=True, reason=reason, **kwargs)

    @classmethod
    def deny(cls, reason: DecisionReason, **kwargs) -> "Decision":
        return cls(allowed=False, reason=reason, **kwargs)


class AuthorizationError(Exception):
    """Base class for authorization failures."""

    def __init__(self, message: str, code: str = "authz_failed"):
        self.message = message
        self.code = code
        super().__init__(message)


class SchemaError(AuthorizationError):
    """Raised when the rule schema is malformed or a lookup hits an unknown name.

    Fatal at load time. Should be unreachable at request time once the
    registry has been validated.
    """

    def __init__(self, message: str):
        super().__init__(message, "schema_error")


class RelationMissing(AuthorizationError):
    """Raised when a rule needs a parent the instance does not have."""

    def __init__(self, instance: ResourceInstance, relation: str):
        self.instance = instance
        self.relation = relation
        super().__init__(
            f"{instance} has no parent via relation '{relation}'",
            "relation_missing"
        )


class StoreUnavailable(AuthorizationError):
    """Raised when a role or relation lookup fails or times out."""

    def __init__(self, operation: str, reason: str = "lookup failed"):
        self.operation = operation
        super().__init__(f"{operation}: {reason}", "store_unavailable")


class NotAuthenticated(AuthorizationError):
    """Reported by the web layer when an anonymous actor is denied."""

    def __init__(self):
        super().__init__("Authentication required", "not_authenticated")
