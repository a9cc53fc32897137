#!/usr/bin/env python3
"""
Configuration for hgresource.

Parses the JSON envelope a pipeline runner writes to stdin:

    {"source": {...}, "version": {"ref": "..."}, "params": {...}}

and reads the few environment overrides the resource honours:

- HGRESOURCE_LOG_LEVEL: Log level for the hgresource logger
- HGRESOURCE_KEEP_TEMP: Keep temporary publish clones (debugging)
- HGRESOURCE_MAX_ATTEMPTS: Push attempts before giving up
"""

import os
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO

import logging
import sys

from .domain.repository import Repository, DEFAULT_BRANCH
from .exit_codes import ConfigurationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # stdout carries the JSON result
    ]
)
logger = logging.getLogger("hgresource")

ENV_LOG_LEVEL = 'HGRESOURCE_LOG_LEVEL'
ENV_KEEP_TEMP = 'HGRESOURCE_KEEP_TEMP'
ENV_MAX_ATTEMPTS = 'HGRESOURCE_MAX_ATTEMPTS'

DEFAULT_MAX_ATTEMPTS = 10

_TRUTHY = {'1', 'true', 'yes', 'on'}


def configure_logging(verbose: bool = False) -> None:
    """Set the package log level from --verbose or $HGRESOURCE_LOG_LEVEL."""
    if verbose:
        logger.setLevel(logging.DEBUG)
        return

    level_name = os.environ.get(ENV_LOG_LEVEL, '').upper()
    if level_name:
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            logger.setLevel(level)
        else:
            logger.warning(f"Ignoring unknown log level {level_name!r}")


def keep_temp_enabled() -> bool:
    return os.environ.get(ENV_KEEP_TEMP, '').lower() in _TRUTHY


def get_max_attempts() -> int:
    value = os.environ.get(ENV_MAX_ATTEMPTS)
    if not value:
        return DEFAULT_MAX_ATTEMPTS
    try:
        attempts = int(value)
    except ValueError:
        raise ConfigurationError(f"{ENV_MAX_ATTEMPTS} must be an integer, got {value!r}")
    if attempts < 1:
        raise ConfigurationError(f"{ENV_MAX_ATTEMPTS} must be at least 1")
    return attempts


def _string_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"source.{name} must be a list of strings")
    return list(value)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{name}' must be an object")
    return section


@dataclass
class Source:
    """Resource-level configuration shared by check, in and out."""
    uri: str = ""
    private_key: str = ""
    include_paths: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)
    branch: str = DEFAULT_BRANCH
    tag_filter: str = ""
    skip_ssl_verification: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Source':
        return cls(
            uri=data.get('uri') or "",
            private_key=data.get('private_key') or "",
            include_paths=_string_list(data.get('paths'), 'paths'),
            exclude_paths=_string_list(data.get('ignore_paths'), 'ignore_paths'),
            branch=data.get('branch') or DEFAULT_BRANCH,
            tag_filter=data.get('tag_filter') or "",
            skip_ssl_verification=bool(data.get('skip_ssl_verification', False)),
        )

    def require_uri(self) -> str:
        if not self.uri:
            raise ConfigurationError("Repository URI must be provided")
        return self.uri

    def to_repository(self, path: str) -> Repository:
        return Repository(
            path=path,
            branch=self.branch,
            include_paths=tuple(self.include_paths),
            exclude_paths=tuple(self.exclude_paths),
            tag_filter=self.tag_filter,
            skip_ssl_verification=self.skip_ssl_verification,
        )


@dataclass
class Params:
    """Step-level parameters of a publish."""
    repository: str = ""
    tag: str = ""
    tag_prefix: str = ""
    rebase: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Params':
        return cls(
            repository=data.get('repository') or "",
            tag=data.get('tag') or "",
            tag_prefix=data.get('tag_prefix') or "",
            rebase=bool(data.get('rebase', False)),
        )


@dataclass
class ResourceInput:
    """The whole stdin envelope."""
    source: Source = field(default_factory=Source)
    version: Optional[str] = None
    params: Params = field(default_factory=Params)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceInput':
        if not isinstance(data, dict):
            raise ConfigurationError("Input must be a JSON object")

        version = data.get('version') or {}
        if not isinstance(version, dict):
            raise ConfigurationError("'version' must be an object")

        return cls(
            source=Source.from_dict(_section(data, 'source')),
            version=version.get('ref') or None,
            params=Params.from_dict(_section(data, 'params')),
        )


def load_input(stream: TextIO) -> ResourceInput:
    """
    Read and parse the input envelope.

    Raises:
        ConfigurationError: If the input isn't a valid envelope
    """
    text = stream.read()
    if not text.strip():
        return ResourceInput()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error parsing input: {e}")

    return ResourceInput.from_dict(data)
