"""Parsers for .NET build descriptors, C# sources and configuration files."""

from src.repo_index.parsers.config_parser import parse_appsettings, parse_csharp_config_keys, scan_config_keys
from src.repo_index.parsers.csharp_parser import CSharpParser
from src.repo_index.parsers.csproj_parser import find_csproj_files, is_test_project, parse_csproj, parse_csproj_file
from src.repo_index.parsers.source_extractor import (
    CSharpSourceExtractor,
    SourceExtractor,
    find_solution_file,
    find_source_files,
)

__all__ = [
    "CSharpParser",
    "CSharpSourceExtractor",
    "SourceExtractor",
    "find_csproj_files",
    "find_solution_file",
    "find_source_files",
    "is_test_project",
    "parse_appsettings",
    "parse_csharp_config_keys",
    "parse_csproj",
    "parse_csproj_file",
    "scan_config_keys",
]
