"""Discovery of configuration keys in settings files and C# sources."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

from src.shared.constants import BUILD_OUTPUT_DIRS, GIT_MARKER_DIR
from src.shared.errors import ParsingError
from src.shared.models.index import ConfigEntry, ConfigSource

logger = logging.getLogger(__name__)

# Strings are matched first so comment markers inside them survive.
_JSON_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)

_ENV_VAR_RE = re.compile(r'Environment\.GetEnvironmentVariable\(\s*"([^"]+)"\s*\)')
_CONFIG_INDEXER_RE = re.compile(r'(?:onfiguration|config)\["([^"]+)"\]', re.IGNORECASE)
_GET_SECTION_RE = re.compile(r'(?:GetSection|GetValue\s*<[^>]+>)\(\s*"([^"]+)"\s*\)')

_TEST_DIRS = frozenset({"test", "tests"})


def strip_json_comments(text: str) -> str:
    return _JSON_COMMENT_RE.sub(lambda m: m.group(1) or "", text)


def _scalar_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _flatten(value: Any, prefix: str, file_path: str, out: list[ConfigEntry]) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            _flatten(child, f"{prefix}:{key}" if prefix else key, file_path, out)
    elif isinstance(value, list):
        return
    elif prefix:
        out.append(ConfigEntry(
            source=ConfigSource.APPSETTINGS,
            key_name=prefix,
            default_value=_scalar_text(value),
            file_path=file_path,
        ))


def parse_appsettings(content: str, file_path: str) -> list[ConfigEntry]:
    """Flatten an ``appsettings*.json`` document into ``Section:Key`` entries.

    Comments are tolerated; arrays are skipped.

    Raises:
        ParsingError: The document is not valid JSON.
    """
    try:
        data = json.loads(strip_json_comments(content))
    except json.JSONDecodeError as exc:
        raise ParsingError(f"Malformed settings file {file_path}: {exc}") from exc
    entries: list[ConfigEntry] = []
    _flatten(data, "", file_path, entries)
    return entries


def parse_csharp_config_keys(content: str, file_path: str) -> list[ConfigEntry]:
    """Find environment-variable and ``IConfiguration`` key lookups in C# code."""
    entries = [
        ConfigEntry(source=ConfigSource.ENV_VAR, key_name=m.group(1), file_path=file_path)
        for m in _ENV_VAR_RE.finditer(content)
    ]
    for regex in (_CONFIG_INDEXER_RE, _GET_SECTION_RE):
        entries.extend(
            ConfigEntry(source=ConfigSource.CONFIGURATION, key_name=m.group(1), file_path=file_path)
            for m in regex.finditer(content)
        )
    return entries


def dedupe_config_entries(entries: list[ConfigEntry]) -> list[ConfigEntry]:
    """Drop repeats of the same (key, source, file), keeping the first."""
    seen: set[tuple[str, str, str]] = set()
    result: list[ConfigEntry] = []
    for entry in entries:
        if entry.identity not in seen:
            seen.add(entry.identity)
            result.append(entry)
    return result


def scan_config_keys(project_dir: str | Path) -> tuple[list[ConfigEntry], list[str]]:
    """Collect configuration keys from a project tree.

    Returns:
        ``(entries, warnings)``.  Unreadable or malformed files are reported
        in *warnings* and otherwise skipped.
    """
    root = Path(project_dir)
    entries: list[ConfigEntry] = []
    warnings: list[str] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in BUILD_OUTPUT_DIRS and d != GIT_MARKER_DIR
        )
        current = Path(dirpath)
        in_test_dir = any(part.lower() in _TEST_DIRS for part in current.relative_to(root).parts)
        for filename in sorted(filenames):
            full_path = current / filename
            relative = full_path.relative_to(root).as_posix()
            is_settings = filename.startswith("appsettings") and filename.endswith(".json")
            is_source = filename.endswith(".cs") and not in_test_dir
            if not (is_settings or is_source):
                continue
            try:
                content = full_path.read_text(encoding="utf-8-sig", errors="replace")
                if is_settings:
                    entries.extend(parse_appsettings(content, relative))
                else:
                    entries.extend(parse_csharp_config_keys(content, relative))
            except (OSError, ParsingError) as exc:
                message = f"Failed to parse {relative}: {exc}"
                logger.warning("%s", message)
                warnings.append(message)

    return dedupe_config_entries(entries), warnings
