"""Built-in rule set, action table and bootstrap grant.

Hierarchy: fleet -> organization -> project, plus a flat ``database``
resource used during system initialization. Only ``admin`` is inherited
down the hierarchy; ``collaborator`` and ``viewer`` stay where granted.
"""

from packages.authz.actions import ActionTable
from packages.authz.loader import load_schema
from packages.authz.models import BootstrapGrant, ResourceInstance
from packages.authz.schema import SchemaRegistry

# Shared by every container type in the hierarchy
_CONTAINER_PERMISSIONS = ["list_children", "modify", "read", "create_child"]
_CONTAINER_ROLES = ["admin", "collaborator", "viewer"]
_CONTAINER_ROLE_PERMISSIONS = {
    "viewer": ["read", "list_children"],
    "collaborator": ["create_child"],
    "admin": ["modify"],
}
_CONTAINER_ROLE_IMPLICATIONS = {
    "collaborator": ["viewer"],
    "admin": ["collaborator"],
}


def _container(name: str, relations: dict | None = None) -> dict:
    return {
        "name": name,
        "permissions": list(_CONTAINER_PERMISSIONS),
        "roles": list(_CONTAINER_ROLES),
        "role_permissions": dict(_CONTAINER_ROLE_PERMISSIONS),
        "role_implications": dict(_CONTAINER_ROLE_IMPLICATIONS),
        "relations": relations or {},
    }


DEFAULT_RULES: dict = {
    "resource_types": [
        _container("fleet"),
        _container("organization", {
            "parent_fleet": {
                "parent_type": "fleet",
                "rules": [{"role": "admin", "parent_role": "admin"}],
            },
        }),
        _container("project", {
            "parent_organization": {
                "parent_type": "organization",
                "rules": [{"role": "admin", "parent_role": "admin"}],
            },
        }),
        {
            "name": "database",
            "permissions": ["query", "modify"],
            "roles": ["init"],
            "role_permissions": {"init": ["query", "modify"]},
        },
    ],
}

# The one fleet and the one database are singletons
FLEET = ResourceInstance(resource_type="fleet", resource_id="fleet")
DATABASE = ResourceInstance(resource_type="database", resource_id="database")

# Identity used while initializing the database; not in the identity store
DB_INIT_ACTOR_ID = "001de000-05e4-4000-8000-000000000001"

DB_INIT_BOOTSTRAP = BootstrapGrant(
    actor_id=DB_INIT_ACTOR_ID,
    instance=DATABASE,
    role="init",
)

DEFAULT_ACTIONS = ActionTable.from_mapping({
    "fleet.read": ("fleet", "read"),
    "fleet.modify": ("fleet", "modify"),
    "organization.list": ("fleet", "list_children"),
    "organization.create": ("fleet", "create_child"),
    "organization.read": ("organization", "read"),
    "organization.modify": ("organization", "modify"),
    "organization.delete": ("organization", "modify"),
    "project.list": ("organization", "list_children"),
    "project.create": ("organization", "create_child"),
    "project.read": ("project", "read"),
    "project.modify": ("project", "modify"),
    "project.delete": ("project", "modify"),
    "project.resource.list": ("project", "list_children"),
    "project.resource.create": ("project", "create_child"),
    "database.query": ("database", "query"),
    "database.modify": ("database", "modify"),
})


def default_registry() -> SchemaRegistry:
    """Return a freshly loaded registry of the built-in rules."""
    return load_schema(DEFAULT_RULES)
