"""Tests for the schema registry and its precomputed closures."""

import copy

import pytest
import yaml

from packages.authz.defaults import DEFAULT_RULES, default_registry
from packages.authz.loader import dump_schema, load_schema
from packages.authz.models import SchemaError
from packages.authz.schema import Relation, ResourceType, RoleInheritance, SchemaRegistry


def _reversed_rules(rules: dict) -> dict:
    """Same rules with every list (and the type order) reversed."""
    def flip(value):
        if isinstance(value, list):
            return [flip(v) for v in reversed(value)]
        if isinstance(value, dict):
            return {k: flip(v) for k, v in reversed(list(value.items()))}
        return value
    return flip(copy.deepcopy(rules))


def _folder(**overrides) -> ResourceType:
    fields = {
        "name": "folder",
        "permissions": ("read", "write"),
        "roles": ("owner", "editor", "reader"),
        "role_permissions": {"reader": ("read",), "editor": ("write",)},
        "role_implications": {"owner": ("editor",), "editor": ("reader",)},
    }
    fields.update(overrides)
    return ResourceType(**fields)


class TestClosures:
    """Test precomputed role and permission tables."""

    def test_base_roles_for_default_rules(self):
        """Base-role sets follow the implication chain admin > collaborator > viewer."""
        registry = default_registry()

        assert registry.roles_granting("project", "modify") == {"admin"}
        assert registry.roles_granting("project", "create_child") == {"admin", "collaborator"}
        assert registry.roles_granting("project", "read") == {"admin", "collaborator", "viewer"}
        assert registry.roles_granting("database", "query") == {"init"}

    def test_role_closure(self):
        """Closure contains the role and everything it implies."""
        registry = default_registry()

        assert registry.role_closure("fleet", "admin") == {"admin", "collaborator", "viewer"}
        assert registry.role_closure("fleet", "viewer") == {"viewer"}

    def test_closure_is_idempotent(self):
        """Re-closing an already-closed role set yields the same set."""
        registry = default_registry()

        for roles in [{"viewer"}, {"collaborator"}, {"admin"}, {"viewer", "admin"}, set()]:
            once = registry.expand("organization", roles)
            assert registry.expand("organization", once) == once

    def test_registration_order_does_not_matter(self):
        """Base-role sets are identical whatever order things were declared in."""
        forward = load_schema(DEFAULT_RULES)
        backward = load_schema(_reversed_rules(DEFAULT_RULES))

        assert forward.type_names == backward.type_names
        for type_name in forward.type_names:
            for permission in forward.get(type_name).permissions:
                assert (
                    forward.roles_granting(type_name, permission)
                    == backward.roles_granting(type_name, permission)
                )
            for role in forward.get(type_name).roles:
                assert forward.role_closure(type_name, role) == backward.role_closure(type_name, role)

    def test_only_admin_is_inherited(self):
        """Only the administrative role propagates down the hierarchy."""
        registry = default_registry()

        assert registry.inherited_sources("project", {"admin"}) == {
            "parent_organization": {"admin"}
        }
        # Viewer on a project can come from admin on the organization, never viewer
        assert registry.inherited_sources("project", {"viewer"}) == {
            "parent_organization": {"admin"}
        }
        assert registry.inherited_sources("fleet", {"admin"}) == {}
        assert registry.inherited_sources("database", {"init"}) == {}

    def test_permissions_of_role(self):
        """Permissions held through a role include implied roles' permissions."""
        registry = default_registry()

        assert registry.permissions_of("database", "init") == {"query", "modify"}
        assert registry.permissions_of("project", "collaborator") == {
            "read", "list_children", "create_child"
        }

    def test_anonymous_permissions(self):
        """Types can open individual permissions to anonymous actors."""
        registry = SchemaRegistry()
        registry.register(_folder(anonymous_permissions=("read",)))
        registry.validate()

        assert registry.is_anonymous_permission("folder", "read")
        assert not registry.is_anonymous_permission("folder", "write")


class TestValidation:
    """Test schema validation failures."""

    def test_role_implication_cycle_rejected(self):
        """A role-implication cycle fails at load time."""
        registry = SchemaRegistry()
        registry.register(_folder(role_implications={
            "owner": ("editor",),
            "editor": ("reader",),
            "reader": ("owner",),
        }))

        with pytest.raises(SchemaError, match="Cycle"):
            registry.validate()
        assert not registry.is_loaded

    def test_self_implication_rejected(self):
        """A role implying itself is a cycle."""
        registry = SchemaRegistry()
        registry.register(_folder(role_implications={"owner": ("owner",)}))

        with pytest.raises(SchemaError, match="owner -> owner"):
            registry.validate()

    def test_relation_cycle_rejected(self):
        """Types whose relations loop back are rejected."""
        registry = SchemaRegistry()
        registry.register(_folder(relations={
            "parent_drive": Relation(
                parent_type="drive",
                rules=(RoleInheritance(role="owner", parent_role="owner"),),
            ),
        }))
        registry.register(_folder(name="drive", relations={
            "parent_folder": Relation(parent_type="folder"),
        }))

        with pytest.raises(SchemaError, match="relation graph"):
            registry.validate()

    def test_self_relation_rejected(self):
        """A type that is its own parent type is a relation cycle."""
        registry = SchemaRegistry()
        registry.register(_folder(relations={
            "parent_folder": Relation(
                parent_type="folder",
                rules=(RoleInheritance(role="owner", parent_role="owner"),),
            ),
        }))

        with pytest.raises(SchemaError, match="Cycle"):
            registry.validate()

    def test_duplicate_names_rejected(self):
        """Permission and role names are unique within a type."""
        registry = SchemaRegistry()
        registry.register(_folder(permissions=("read", "write", "read")))
        with pytest.raises(SchemaError, match="duplicate permission"):
            registry.validate()

        registry = SchemaRegistry()
        registry.register(_folder(roles=("owner", "editor", "reader", "editor")))
        with pytest.raises(SchemaError, match="duplicate role"):
            registry.validate()

    def test_duplicate_type_rejected(self):
        """Each type is registered once."""
        registry = SchemaRegistry()
        registry.register(_folder())

        with pytest.raises(SchemaError, match="Duplicate resource type"):
            registry.register(_folder())

    @pytest.mark.parametrize("overrides,match", [
        ({"role_permissions": {"ghost": ("read",)}}, "unknown role 'ghost'"),
        ({"role_permissions": {"reader": ("delete",)}}, "unknown permission 'delete'"),
        ({"role_implications": {"owner": ("ghost",)}}, "implies unknown role"),
        ({"anonymous_permissions": ("delete",)}, "unknown anonymous permission"),
        (
            {"relations": {"parent": Relation(parent_type="nowhere")}},
            "unknown parent type",
        ),
    ])
    def test_dangling_references_rejected(self, overrides, match):
        """References to undeclared names fail at load time."""
        registry = SchemaRegistry()
        registry.register(_folder(**overrides))

        with pytest.raises(SchemaError, match=match):
            registry.validate()

    def test_unknown_parent_role_rejected(self):
        """Inheritance rules must name a role the parent type declares."""
        registry = SchemaRegistry()
        registry.register(_folder())
        registry.register(_folder(name="file", relations={
            "parent_folder": Relation(
                parent_type="folder",
                rules=(RoleInheritance(role="owner", parent_role="admin"),),
            ),
        }))

        with pytest.raises(SchemaError, match="has no role 'admin'"):
            registry.validate()


class TestLifecycle:
    """Test the not-loaded to loaded transition."""

    def test_lookup_before_load_fails(self):
        """Tables are unavailable until validate() runs."""
        registry = SchemaRegistry()
        registry.register(_folder())

        with pytest.raises(SchemaError, match="not been loaded"):
            registry.roles_granting("folder", "read")

    def test_register_after_load_fails(self):
        """The registry is read-only once loaded."""
        registry = default_registry()

        with pytest.raises(SchemaError, match="already loaded"):
            registry.register(_folder())

    def test_validate_twice_is_noop(self):
        """Calling validate() again keeps the same tables."""
        registry = default_registry()
        before = registry.roles_granting("project", "read")
        registry.validate()

        assert registry.roles_granting("project", "read") == before

    def test_unknown_names_raise(self):
        """Unknown types, permissions and roles are schema errors."""
        registry = default_registry()

        with pytest.raises(SchemaError, match="Unknown resource type"):
            registry.roles_granting("silo", "read")
        with pytest.raises(SchemaError, match="Unknown permission"):
            registry.roles_granting("project", "destroy")
        with pytest.raises(SchemaError, match="Unknown role"):
            registry.expand("project", {"owner"})
        with pytest.raises(SchemaError, match="Unknown relation"):
            registry.parent_type("project", "parent_fleet")

    def test_declarations_cannot_be_altered(self):
        """Changing a returned or registered declaration leaves the registry intact."""
        declared = _folder()
        registry = SchemaRegistry()
        registry.register(declared)
        registry.validate()

        declared.role_permissions["reader"] = ("read", "write")
        registry.get("folder").role_permissions["reader"] = ("read", "write")
        registry.get("folder").relations["parent"] = Relation(parent_type="folder")

        assert registry.get("folder").role_permissions["reader"] == ("read",)
        assert registry.get("folder").relations == {}
        dumped = yaml.safe_load(dump_schema(registry))
        assert dumped["resource_types"][0]["role_permissions"]["reader"] == ["read"]
        assert registry.roles_granting("folder", "write") == {"owner", "editor"}
