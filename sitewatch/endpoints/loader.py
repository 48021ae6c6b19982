"""Endpoint file import — parses an ``endpoints.yaml`` into definitions.

Format::

    endpoints:
      - name: API
        url: https://api.example.com/health
        method: GET
        timeout: 5s
        check_interval: 1m
        expected_status: 200
        headers: {Authorization: "Bearer ..."}
        failure_threshold: 3
        success_threshold: 2
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from sitewatch.endpoints.models import EndpointDefinition
from sitewatch.errors import ValidationError

logger = logging.getLogger(__name__)


def parse_endpoints(text: str) -> list[EndpointDefinition]:
    """Parse YAML text. Malformed entries are skipped with a warning."""
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"invalid endpoints file: {e}") from e
    if not isinstance(raw, dict):
        raise ValidationError("endpoints file must be a mapping with an 'endpoints' list")

    definitions = []
    for entry in raw.get("endpoints") or []:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed endpoint entry: %r", entry)
            continue
        try:
            defn = EndpointDefinition.from_dict(entry)
        except ValidationError as e:
            logger.warning("Skipping endpoint %r: %s", entry.get("name"), e)
            continue
        if not defn.name or not defn.url:
            logger.warning("Skipping endpoint without name/url: %r", entry)
            continue
        definitions.append(defn.apply_defaults())
    return definitions


def load_endpoints_file(path: Path | str) -> list[EndpointDefinition]:
    path = Path(path)
    if not path.exists():
        logger.warning("Endpoints file not found: %s", path)
        return []
    definitions = parse_endpoints(path.read_text(encoding="utf-8"))
    logger.info("Parsed %d endpoints from %s", len(definitions), path)
    return definitions
