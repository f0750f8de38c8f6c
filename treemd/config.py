"""
Configuration management for treemd.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/treemd/config.toml) and local
(treemd.toml) configurations.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict


USER_CONFIG_PATH = Path.home() / ".config" / "treemd" / "config.toml"


@dataclass
class TreemdConfig:
    """
    treemd configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (TREEMD_*)
    3. Explicit config file (--config)
    4. Local config file (./treemd.toml or ./.treemdrc)
    5. User config file (~/.config/treemd/config.toml)
    6. System defaults
    """

    # Query output
    output_format: str = field(default="plain")  # plain, json, json-pretty, jsonl, md, tree
    queries_file: str = field(default="~/.config/treemd/queries.yaml")

    # Display settings
    color_output: bool = field(default=True)
    tree_style: str = field(default="dim")  # rich style for tree guide lines
    hide_frontmatter: bool = field(default=True)

    # Advanced
    log_level: str = field(default="WARNING")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "TreemdConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        if USER_CONFIG_PATH.exists():
            config._merge(cls._load_toml(USER_CONFIG_PATH))

        local_paths = [
            Path.cwd() / "treemd.toml",
            Path.cwd() / ".treemdrc",
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with TREEMD_ prefix."""
        prefix = "TREEMD_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    else:
                        setattr(self, config_key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in paths."""
        value = self.queries_file
        if isinstance(value, str):
            self.queries_file = os.path.expanduser(os.path.expandvars(value))

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)

        Returns:
            The path written
        """
        if path is None:
            path = USER_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            tomli_w.dump(asdict(self), f)
        return path

    @property
    def queries_path(self) -> Path:
        """Resolved path of the saved queries file."""
        return Path(self.queries_file)


# Global configuration instance
_config: Optional[TreemdConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> TreemdConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = TreemdConfig.load(config_file)
    return _config


def init_config(config_file: Optional[Path] = None, **kwargs) -> TreemdConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        config_file: Explicit config file to merge
        **kwargs: Other configuration overrides; None values are ignored

    Returns:
        Configured instance
    """
    config = get_config(reload=config_file is not None, config_file=config_file)

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
