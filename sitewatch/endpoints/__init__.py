"""Endpoint definitions, the live registry and YAML import.

Only the model is re-exported here; ``EndpointRegistry`` lives in
``sitewatch.endpoints.registry`` because it depends on the storage layer,
which itself imports the model.
"""

from sitewatch.endpoints.models import (
    EndpointDefinition,
    format_duration,
    generate_id,
    parse_duration,
)

__all__ = [
    "EndpointDefinition",
    "format_duration",
    "generate_id",
    "parse_duration",
]
