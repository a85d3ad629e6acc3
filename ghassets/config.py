"""Workspace configuration for ghassets.

Settings are read from ``.ghassets.json`` in the workspace root, with a few
values overridable through environment variables::

    {
        "repositories": [
            {"owner": "org", "repo": "copilot-assets", "path": "agents"}
        ],
        "fileExtensions": [".md", ".json"],
        "destinationMappings": {"default": ".github", "rules": []},
        "excludePatterns": ["**/drafts/**"],
        "maxDepth": 3
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .exceptions import ConfigError
from .models import RepositoryConfig
from .sync.patterns import DestinationMapping, DestinationRule
from .utils import DEFAULT_API_URL, DEFAULT_HTML_URL

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".ghassets.json"

DEFAULT_FILE_EXTENSIONS = [".md", ".json", ".yml", ".yaml", ".prompt"]
DEFAULT_DESTINATION = ".github"
DEFAULT_MAX_DEPTH = 3

TOKEN_ENV_VARS = ("GHASSETS_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")


@dataclass
class Settings:
    """Resolved configuration consumed by the sync engine."""

    repositories: list[RepositoryConfig] = field(default_factory=list)
    file_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS)
    )
    destination: DestinationMapping = field(default_factory=DestinationMapping)
    exclude_patterns: list[str] = field(default_factory=list)
    max_depth: int = DEFAULT_MAX_DEPTH
    enterprise_url: str = ""
    token: Optional[str] = None

    @property
    def is_enterprise(self) -> bool:
        return bool(self.enterprise_url)

    @property
    def api_base_url(self) -> str:
        """REST API root (``/api/v3`` on GitHub Enterprise)."""
        if self.enterprise_url:
            return f"{self.enterprise_url.rstrip('/')}/api/v3"
        return DEFAULT_API_URL

    @property
    def html_base_url(self) -> str:
        if self.enterprise_url:
            return self.enterprise_url.rstrip("/")
        return DEFAULT_HTML_URL

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        """Build settings from the parsed configuration file.

        Invalid repository entries are skipped with a warning so one typo
        does not hide every other repository.

        Raises:
            ConfigError: If a value has the wrong type
        """
        repositories: list[RepositoryConfig] = []
        raw_repos = data.get("repositories", [])
        if not isinstance(raw_repos, list):
            raise ConfigError("'repositories' must be a list")
        for index, raw in enumerate(raw_repos):
            if not isinstance(raw, Mapping):
                logger.warning(f"Skipping repository #{index}: not an object")
                continue
            try:
                repositories.append(RepositoryConfig.from_dict(raw))
            except ConfigError as e:
                logger.warning(f"Skipping repository #{index}: {e}")

        extensions = data.get("fileExtensions", DEFAULT_FILE_EXTENSIONS)
        if not isinstance(extensions, list) or not all(
            isinstance(ext, str) for ext in extensions
        ):
            raise ConfigError("'fileExtensions' must be a list of strings")

        exclude = data.get("excludePatterns", [])
        if not isinstance(exclude, list) or not all(
            isinstance(pattern, str) for pattern in exclude
        ):
            raise ConfigError("'excludePatterns' must be a list of strings")

        max_depth = data.get("maxDepth", DEFAULT_MAX_DEPTH)
        if not isinstance(max_depth, int) or isinstance(max_depth, bool):
            raise ConfigError("'maxDepth' must be an integer")

        token = data.get("token")
        if token is not None and not isinstance(token, str):
            raise ConfigError("'token' must be a string")

        return cls(
            repositories=repositories,
            file_extensions=list(extensions),
            destination=_parse_destination(data.get("destinationMappings")),
            exclude_patterns=list(exclude),
            max_depth=max_depth,
            enterprise_url=str(data.get("githubEnterpriseUrl") or "").strip(),
            token=token or None,
        )


def _parse_destination(raw: Any) -> DestinationMapping:
    if raw is None:
        return DestinationMapping()
    if not isinstance(raw, Mapping):
        raise ConfigError("'destinationMappings' must be an object")

    rules: list[DestinationRule] = []
    raw_rules = raw.get("rules", [])
    if isinstance(raw_rules, list):
        for rule in raw_rules:
            if (
                isinstance(rule, Mapping)
                and isinstance(rule.get("pattern"), str)
                and isinstance(rule.get("destination"), str)
            ):
                rules.append(
                    DestinationRule(
                        pattern=rule["pattern"], destination=rule["destination"]
                    )
                )
            else:
                logger.warning(f"Ignoring invalid destination rule: {rule!r}")

    default = raw.get("default")
    if not isinstance(default, str) or not default.strip():
        default = DEFAULT_DESTINATION
    return DestinationMapping(default=default, rules=rules)


def load_settings(
    workspace_root: Path, environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """Load settings for a workspace.

    Args:
        workspace_root: Workspace directory containing ``.ghassets.json``
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Resolved settings; defaults when no configuration file exists

    Raises:
        ConfigError: If the configuration file exists but is malformed
    """
    env = os.environ if environ is None else environ
    config_file = workspace_root / CONFIG_FILE_NAME

    if config_file.exists():
        try:
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to read {config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a JSON object")
        settings = Settings.from_dict(data)
        logger.debug(
            f"Loaded {len(settings.repositories)} repositories from {config_file}"
        )
    else:
        logger.debug(f"No configuration file at {config_file}, using defaults")
        settings = Settings()

    enterprise_url = env.get("GHASSETS_ENTERPRISE_URL", "").strip()
    if enterprise_url:
        settings.enterprise_url = enterprise_url

    max_depth = env.get("GHASSETS_MAX_DEPTH")
    if max_depth:
        try:
            settings.max_depth = int(max_depth)
        except ValueError as e:
            raise ConfigError(f"GHASSETS_MAX_DEPTH must be an integer: {e}") from e

    return settings
