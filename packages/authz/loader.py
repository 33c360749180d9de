"""Load the authorization schema from structured data.

Rules are plain data (a mapping, usually read from YAML):

    resource_types:
      - name: organization
        permissions: [read, modify]
        roles: [admin, viewer]
        role_permissions:
          viewer: [read]
          admin: [modify]
        role_implications:
          admin: [viewer]
        relations:
          parent_fleet:
            parent_type: fleet
            rules:
              - {role: admin, parent_role: admin}
"""

import logging
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from packages.authz.models import SchemaError
from packages.authz.schema import ResourceType, SchemaRegistry

logger = logging.getLogger(__name__)


class SchemaDocument(BaseModel):
    """Top-level rule document."""

    resource_types: list[ResourceType] = Field(default_factory=list)


def load_schema(document: Mapping[str, Any]) -> SchemaRegistry:
    """Build and validate a registry from a rule document.

    Raises:
        SchemaError: If the document is malformed or fails validation
    """
    try:
        parsed = SchemaDocument.model_validate(document)
    except ValidationError as e:
        raise SchemaError(f"Invalid schema document: {e}") from e

    registry = SchemaRegistry()
    for resource_type in parsed.resource_types:
        registry.register(resource_type)
    registry.validate()
    return registry


def load_schema_file(path: str | Path) -> SchemaRegistry:
    """Read a YAML rule file and build a validated registry.

    Raises:
        SchemaError: If the file is missing, unparseable or invalid
    """
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text())
    except OSError as e:
        raise SchemaError(f"Cannot read schema file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SchemaError(f"Invalid YAML in schema file {path}: {e}") from e

    if not isinstance(document, dict):
        raise SchemaError(f"Schema file {path} must contain a mapping")

    logger.info("Loading authorization schema from %s", path)
    return load_schema(document)


def dump_schema(registry: SchemaRegistry) -> str:
    """Render a registry's declarations back to YAML."""
    document = SchemaDocument(
        resource_types=[registry.get(name) for name in sorted(registry.type_names)]
    )
    return yaml.safe_dump(document.model_dump(mode="json"), sort_keys=True)
