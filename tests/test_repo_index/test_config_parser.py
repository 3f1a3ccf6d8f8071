"""Tests for src.repo_index.parsers.config_parser.

Covers:
    1. appsettings flattening to ``Section:Key`` with defaults
    2. JSON comments are tolerated, strings containing ``//`` survive
    3. Environment variable and IConfiguration lookups in C# code
    4. Tree scan skips test folders for C# sources and reports bad files
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.repo_index.parsers.config_parser import (
    dedupe_config_entries,
    parse_appsettings,
    parse_csharp_config_keys,
    scan_config_keys,
    strip_json_comments,
)
from src.shared.errors import ParsingError
from src.shared.models.index import ConfigEntry, ConfigSource


APPSETTINGS = """\
{
  // cache settings
  "Caching": {
    "DefaultTtlSeconds": 300,
    "RedisConnectionString": "localhost:6379",
    "Enabled": true
  },
  /* block comment */
  "CosmosDb": { "Endpoint": "https://acme.documents.azure.com:443/" },
  "AllowedHosts": ["a", "b"],
  "Optional": null
}
"""


class TestAppSettings:
    """Nested JSON objects become colon-separated keys."""

    def test_flattening(self) -> None:
        entries = parse_appsettings(APPSETTINGS, "src/CmApi/appsettings.json")
        keys = {e.key_name: e.default_value for e in entries}

        assert keys["Caching:DefaultTtlSeconds"] == "300"
        assert keys["Caching:RedisConnectionString"] == "localhost:6379"
        assert keys["Caching:Enabled"] == "true"
        assert keys["CosmosDb:Endpoint"] == "https://acme.documents.azure.com:443/"
        assert keys["Optional"] is None
        assert "AllowedHosts" not in keys
        assert all(e.source == ConfigSource.APPSETTINGS for e in entries)
        assert all(e.file_path == "src/CmApi/appsettings.json" for e in entries)

    def test_comment_stripping_keeps_urls(self) -> None:
        text = '{"Url": "http://example.com" // trailing\n}'
        assert strip_json_comments(text) == '{"Url": "http://example.com" \n}'

    def test_malformed_raises(self) -> None:
        with pytest.raises(ParsingError):
            parse_appsettings("{ not json", "appsettings.json")


class TestCSharpConfigKeys:
    """Configuration lookups in code are found by pattern."""

    def test_lookups(self) -> None:
        source = """\
var env = Environment.GetEnvironmentVariable("ASPNETCORE_ENVIRONMENT");
var servers = Configuration["Kafka:BootstrapServers"];
var section = config.GetSection("Caching");
var ttl = configuration.GetValue<int>("Caching:DefaultTtlSeconds");
"""
        entries = parse_csharp_config_keys(source, "src/CmApi/Startup.cs")
        found = {(e.source, e.key_name) for e in entries}

        assert (ConfigSource.ENV_VAR, "ASPNETCORE_ENVIRONMENT") in found
        assert (ConfigSource.CONFIGURATION, "Kafka:BootstrapServers") in found
        assert (ConfigSource.CONFIGURATION, "Caching") in found
        assert (ConfigSource.CONFIGURATION, "Caching:DefaultTtlSeconds") in found

    def test_dedupe_keeps_first(self) -> None:
        entry = ConfigEntry(source=ConfigSource.ENV_VAR, key_name="LOG_LEVEL", file_path="a.cs")
        other = ConfigEntry(source=ConfigSource.ENV_VAR, key_name="LOG_LEVEL", file_path="b.cs")

        assert dedupe_config_entries([entry, entry, other]) == [entry, other]


class TestScanConfigKeys:
    """Whole-tree discovery."""

    def test_scan(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "appsettings.json").write_text('{"Caching": {"DefaultTtlSeconds": 300}}')
        (tmp_path / "src" / "appsettings.Development.json").write_text("{ broken")
        (tmp_path / "src" / "Program.cs").write_text(
            'var lvl = Environment.GetEnvironmentVariable("LOG_LEVEL");'
        )
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "Fixture.cs").write_text(
            'Environment.GetEnvironmentVariable("TEST_ONLY");'
        )

        entries, warnings = scan_config_keys(tmp_path)
        keys = {e.key_name for e in entries}

        assert keys == {"Caching:DefaultTtlSeconds", "LOG_LEVEL"}
        assert len(warnings) == 1
        assert "appsettings.Development.json" in warnings[0]
