"""Action to permission mapping.

The table is owned by the calling layer: it lists, per exposed operation,
which permission on which resource type the operation requires.
"""

from typing import Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field

from packages.authz.models import SchemaError
from packages.authz.schema import SchemaRegistry


class ActionRule(BaseModel):
    """Permission required by one application action."""

    model_config = ConfigDict(frozen=True)

    resource_type: str = Field(description="Resource type the action targets")
    permission: str = Field(description="Permission required on that resource")


class ActionTable:
    """Static, read-only mapping of action names to ActionRules."""

    def __init__(self, rules: Mapping[str, ActionRule]):
        self._rules = dict(rules)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, tuple[str, str]]) -> "ActionTable":
        """Build from ``{action: (resource_type, permission)}``."""
        return cls({
            action: ActionRule(resource_type=resource_type, permission=permission)
            for action, (resource_type, permission) in mapping.items()
        })

    def lookup(self, action: str) -> ActionRule | None:
        return self._rules.get(action)

    def validate_against(self, registry: SchemaRegistry) -> None:
        """Check every rule names a declared type and permission.

        Raises:
            SchemaError: On the first rule that does not
        """
        for action, rule in self._rules.items():
            if rule.resource_type not in registry.type_names:
                raise SchemaError(
                    f"Action '{action}' targets unknown resource type '{rule.resource_type}'"
                )
            if not registry.has_permission_name(rule.resource_type, rule.permission):
                raise SchemaError(
                    f"Action '{action}' requires unknown permission "
                    f"'{rule.permission}' on '{rule.resource_type}'"
                )

    def __contains__(self, action: str) -> bool:
        return action in self._rules

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
