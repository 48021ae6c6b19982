"""Tests for endpoint definitions, ID generation and duration parsing."""

from __future__ import annotations

import re

import pytest

from sitewatch.endpoints.models import (
    EndpointDefinition,
    format_duration,
    generate_id,
    parse_duration,
)
from sitewatch.errors import ValidationError

ID_RE = re.compile(r"^[A-Za-z0-9]+(-[A-Za-z0-9]+)*$")


class TestDefaults:
    def test_defaults(self) -> None:
        d = EndpointDefinition(name="API", url="https://x")
        assert d.method == "GET"
        assert d.timeout == 10.0
        assert d.check_interval == 30.0
        assert d.expected_status == 200
        assert d.failure_threshold == 3
        assert d.success_threshold == 2
        assert d.enabled is True
        assert d.alerts_suppressed is False

    def test_apply_defaults_fixes_zero_values(self) -> None:
        d = EndpointDefinition(
            name="API", url="https://x", method="", timeout=0, check_interval=-1,
            expected_status=0, failure_threshold=0, success_threshold=-3,
        ).apply_defaults()
        assert d.method == "GET"
        assert d.timeout == 10.0
        assert d.check_interval == 30.0
        assert d.expected_status == 200
        assert d.failure_threshold == 3
        assert d.success_threshold == 2
        assert d.id == "API-https-x"

    def test_method_uppercased(self) -> None:
        assert EndpointDefinition(name="a", url="b", method="head").apply_defaults().method == "HEAD"

    def test_dict_roundtrip_keeps_fields(self) -> None:
        d = EndpointDefinition(
            name="API", url="https://x", headers={"X-Key": "1"}, timeout=2.5,
        ).apply_defaults()
        again = EndpointDefinition.from_dict(d.to_dict())
        assert again == d

    def test_from_dict_parses_duration_strings(self) -> None:
        d = EndpointDefinition.from_dict(
            {"name": "API", "url": "https://x", "timeout": "500ms", "check_interval": "1m30s"}
        )
        assert d.timeout == pytest.approx(0.5)
        assert d.check_interval == 90.0

    def test_from_dict_bad_duration(self) -> None:
        with pytest.raises(ValidationError):
            EndpointDefinition.from_dict({"name": "a", "url": "b", "timeout": "ten seconds"})

    def test_from_dict_bad_int(self) -> None:
        with pytest.raises(ValidationError):
            EndpointDefinition.from_dict({"name": "a", "url": "b", "failure_threshold": "many"})


class TestGenerateID:
    def test_deterministic(self) -> None:
        assert generate_id("API", "https://x") == generate_id("API", "https://x")

    def test_url_changes_id(self) -> None:
        assert generate_id("API", "https://x") != generate_id("API", "https://y")

    def test_example(self) -> None:
        assert generate_id("My API", "https://api.example.com/health") == (
            "My-API-https-api-example-com-health"
        )

    @pytest.mark.parametrize(
        "name,url",
        [
            ("API", "https://x"),
            ("  spaced  name ", "http://a.b/c?d=e&f"),
            ("--weird__name--", "https://x.io/"),
            ("ünïcode ✓", "https://例え.jp/path"),
            ("a", "b"),
        ],
    )
    def test_charset_and_dashes(self, name: str, url: str) -> None:
        endpoint_id = generate_id(name, url)
        assert ID_RE.match(endpoint_id), endpoint_id
        assert "--" not in endpoint_id
        assert not endpoint_id.startswith("-")
        assert not endpoint_id.endswith("-")

    def test_drops_other_characters(self) -> None:
        assert generate_id("a?b", "c") == "ab-c"


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("10s", 10.0),
            ("1m30s", 90.0),
            ("250ms", 0.25),
            ("2h", 7200.0),
            ("1.5m", 90.0),
            ("15", 15.0),
            (7, 7.0),
            (0.5, 0.5),
        ],
    )
    def test_valid(self, text, seconds: float) -> None:
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "abc", "10x", "s", "-5", "1m 30s"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValidationError):
            parse_duration(text)

    def test_format(self) -> None:
        assert format_duration(90) == "1m30s"
        assert format_duration(0.25) == "250ms"
        assert format_duration(3600) == "1h"
        assert format_duration(0) == "0ms"
