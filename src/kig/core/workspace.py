"""
Workspace manages kig project discovery and configuration loading.

The workspace is responsible for:
1. Finding kig.yml by walking up directories
2. Reading workspace configuration (kig.yml)
3. Collecting pollers defined inline and in the pollers/ directory
4. Expanding environment variables
5. Preparing a validated WorkspaceConfig for the Coordinator
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from kig.messages import get_logger
from kig.utility.exceptions import ConfigError

from .configs import KigSettings, PollerConfig, settings

WORKSPACE_FILE = "kig.yml"


class WorkspaceConfig(BaseModel):
    """Configuration model for a kig workspace."""

    pollers: Dict[str, PollerConfig] = Field(..., description="Poller configurations")
    connections: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Named connection configurations"
    )
    options: KigSettings = Field(
        default_factory=lambda: settings, description="Workspace-wide defaults"
    )

    @field_validator("pollers")
    @classmethod
    def validate_pollers_not_empty(cls, v):
        """Validate pollers section is not empty."""
        if not v:
            raise ValueError("At least one poller must be configured")
        return v

    @field_validator("options", mode="before")
    @classmethod
    def parse_options(cls, v):
        """Apply workspace overrides on top of the global settings."""
        if v is None:
            return settings
        if isinstance(v, dict):
            return settings.merged(v)
        return v

    @model_validator(mode="after")
    def validate_connection_references(self):
        """Every named connection a poller refers to must exist."""
        for name, poller in self.pollers.items():
            if poller.name is None:
                poller.name = name
            if isinstance(poller.connection, str) and (
                poller.connection not in self.connections
            ):
                raise ValueError(
                    f"Poller '{name}' refers to unknown connection "
                    f"'{poller.connection}'. Known connections: "
                    f"{sorted(self.connections) or 'none'}"
                )
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceConfig":
        """
        Create configuration from dictionary.

        Raises:
            ConfigError: If the configuration is invalid
        """
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid workspace configuration: {e}") from e

    def get_poller_config(self, poller_name: str) -> PollerConfig:
        """Get configuration for a specific poller."""
        if poller_name not in self.pollers:
            raise ConfigError(
                f"Poller '{poller_name}' not found. "
                f"Available pollers: {sorted(self.pollers)}"
            )
        return self.pollers[poller_name]


class Workspace:
    """
    Workspace represents a kig project and manages configuration loading.

    Layout:
    ```
    my_project/
      kig.yml          # name, connections, options, inline pollers
      pollers/         # one <poller_name>.yml per poller (optional)
      sql/             # statement files referenced by pollers (optional)
    ```
    """

    def __init__(self, kig_yml: Path, name: str, pollers_dir: str = "pollers"):
        """
        Create a Workspace from kig.yml path.

        Args:
            kig_yml: Path to kig.yml file
            name: Workspace name (from kig.yml)
            pollers_dir: Name of the pollers directory (default: "pollers")
        """
        self.kig_yml = kig_yml
        self.root = kig_yml.parent
        self.name = name
        self.pollers_dir = pollers_dir
        self.pollers_path = self.root / pollers_dir
        self.config: Dict[str, Any] = {}
        self.connections: Dict[str, Any] = {}
        self.options: Dict[str, Any] = {}
        self.logger = get_logger("kig.workspace")

    @staticmethod
    def find(start_path: Optional[Path] = None) -> "Workspace":
        """
        Find kig.yml by walking up directories from start_path.

        Args:
            start_path: Directory to start searching from (default: current directory)

        Returns:
            Workspace instance

        Raises:
            ConfigError: If kig.yml is not found
        """
        if start_path is None:
            start_path = Path.cwd()

        current = Path(start_path).resolve()
        searched_paths = []

        while True:
            project_file = current / WORKSPACE_FILE
            searched_paths.append(str(project_file))
            if project_file.exists():
                return Workspace.from_path(project_file)
            if current == current.parent:
                break
            current = current.parent

        error_msg = f"""
No {WORKSPACE_FILE} found in current path: {Path(start_path).resolve()}

Searched locations:
{chr(10).join(f"  - {path}" for path in searched_paths)}

To get started, run:
  kig init <project_name>
"""
        raise ConfigError(error_msg)

    @classmethod
    def from_path(cls, kig_yml: Union[str, Path]) -> "Workspace":
        """
        Create a Workspace from kig.yml path.

        Args:
            kig_yml: Path to kig.yml file, or the directory containing it

        Returns:
            Workspace instance

        Raises:
            ConfigError: If the file does not exist or is not valid YAML
        """
        kig_yml = Path(kig_yml)
        if kig_yml.is_dir():
            kig_yml = kig_yml / WORKSPACE_FILE
        if not kig_yml.exists():
            raise ConfigError(f"Workspace file not found: {kig_yml}")

        workspace_data = cls._load_yaml(kig_yml)
        name = workspace_data.get("name", kig_yml.parent.name)
        pollers_dir = workspace_data.get("pollers_dir", "pollers")

        return cls(kig_yml.resolve(), name, pollers_dir)

    @staticmethod
    def _load_yaml(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping at the top of {path}")
        return data

    def _read_workspace_config(self) -> None:
        """Read workspace configuration from kig.yml."""
        self.config = self._expand_env_vars(self._load_yaml(self.kig_yml))

        self.connections = self.config.get("connections") or {}
        self.options = self.config.get("options") or {}

        self.logger.info(f"Loaded workspace config: {self.name}")
        self.logger.debug(f"Raw workspace config: {self.config}")

    def _find_pollers(self) -> Dict[str, Dict[str, Any]]:
        """
        Collect poller definitions.

        Inline pollers come from the `pollers:` section of kig.yml. Every
        <name>.yml (or .yaml) file in the pollers directory adds one more,
        named after the file. A name defined twice is an error.

        Returns:
            Dictionary mapping poller names to raw poller configurations

        Raises:
            ConfigError: If a poller is defined twice or no poller is found
        """
        pollers: Dict[str, Dict[str, Any]] = dict(self.config.get("pollers") or {})

        if self.pollers_path.is_dir():
            self.logger.debug(f"Looking for pollers in: {self.pollers_path}")
            poller_files = sorted(
                list(self.pollers_path.glob("*.yml"))
                + list(self.pollers_path.glob("*.yaml"))
            )
            for poller_file in poller_files:
                poller_name = poller_file.stem
                if poller_name in pollers:
                    raise ConfigError(
                        f"Poller '{poller_name}' is defined in {self.kig_yml.name} "
                        f"and in {poller_file}"
                    )
                pollers[poller_name] = self._expand_env_vars(
                    self._load_yaml(poller_file)
                )
                self.logger.debug(f"Loaded poller: {poller_name}")

        if not pollers:
            raise ConfigError(
                f"No pollers found in {self.kig_yml} or {self.pollers_path}"
            )

        return pollers

    def _expand_env_vars(self, data: Any) -> Any:
        """
        Recursively expand environment variables in configuration data.

        Supports patterns like ${VAR_NAME} and ${VAR_NAME:-default_value}

        Raises:
            ConfigError: If environment variable is not set and no default provided
        """
        if isinstance(data, str):
            pattern = r"\$\{([^:}]+)(?::-([^}]*))?\}"

            def replace_env_var(match):
                var_name = match.group(1)
                default_value = match.group(2)

                env_value = os.getenv(var_name)
                if env_value is not None:
                    return env_value
                if default_value is not None:
                    return default_value
                raise ConfigError(
                    f"Environment variable '{var_name}' is not set and no default"
                )

            return re.sub(pattern, replace_env_var, data)

        elif isinstance(data, dict):
            return {key: self._expand_env_vars(value) for key, value in data.items()}

        elif isinstance(data, list):
            return [self._expand_env_vars(item) for item in data]

        return data

    def prepare(self) -> WorkspaceConfig:
        """
        Prepare workspace configuration for Coordinator execution.

        Returns:
            Validated WorkspaceConfig

        Raises:
            ConfigError: If configuration cannot be loaded
        """
        self._read_workspace_config()
        pollers = self._find_pollers()

        config = WorkspaceConfig.from_dict(
            {
                "pollers": pollers,
                "connections": self.connections,
                "options": self.options,
            }
        )

        self.logger.info(
            f"Prepared workspace '{self.name}' with {len(config.pollers)} "
            f"poller{'s' if len(config.pollers) != 1 else ''}"
        )
        return config
