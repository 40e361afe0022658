"""
Configuration management for audiomirror

This module handles loading, validation, and management of application settings
from multiple sources including YAML files and environment variables.

The configuration is organized into logical sections using dataclasses:
- Library settings (location, hidden files, symlinks)
- Synchronization behavior (deletion, concurrency, data files)
- Encoder settings (MP3 threshold and quality, lossy codec and bitrate)
- Cover art handling
- External tool locations
- Logging

Command-line flags override whatever is loaded here; the CLI copies its
options onto the settings object before building the sync run.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from dotenv import load_dotenv

from ..exceptions import ConfigError

# Load environment variables from .env file if present
load_dotenv()


LOSSY_CODECS = ("opus", "vorbis", "aac")


@dataclass
class LibraryConfig:
    """
    Source library location and walk options

    The library path is usually given on the command line with -L, but a
    default can be stored here or in AUDIOMIRROR_LIBRARY.
    """
    path: str = "~/Music"
    ignore_hidden: bool = True
    follow_symlinks: bool = True


@dataclass
class SyncConfig:
    """
    Synchronization configuration

    Controls what the planner does with the destination tree: whether stale
    entries are removed up front, whether non-music files are carried over,
    and how many transcoding jobs may run at once.
    """
    concurrency: int = 0  # 0 = number of CPUs
    delete_before: bool = False
    only_music: bool = False
    force_transcode: bool = False
    dry_run: bool = False
    fail_on_error: bool = False
    verbose: bool = False
    strip_prefixes: bool = False
    data_exceptions: list = field(default_factory=lambda: ["cover.jpg"])
    ignore_files: list = field(default_factory=list)
    copy_extensions: list = field(default_factory=list)
    timeout: int = 0  # seconds per encoder run, 0 = no limit


@dataclass
class MP3Config:
    """
    MP3 encoder configuration

    Sources already in MP3 at or below the bitrate threshold (Kbps) are copied
    as they are; everything else is encoded with LAME VBR at the given quality
    (0 best, 9 smallest).
    """
    bitrate_threshold: int = 256
    quality: int = 4


@dataclass
class LossyConfig:
    """Generic lossy encoder configuration (used instead of MP3 when enabled)"""
    enabled: bool = False
    codec: str = "opus"  # opus, vorbis, aac
    bitrate: str = "96k"
    use_ogg_extension: bool = False


@dataclass
class CoverConfig:
    """
    Cover art configuration

    When downscale is enabled, the file named by source is resized to fit
    within max_size pixels and written under the target name.
    """
    downscale: bool = False
    source: str = "cover.jpg"
    target: str = "cover.jpg"
    max_size: int = 500


@dataclass
class ToolsConfig:
    """Locations of the external encoder binaries"""
    lame: str = "lame"
    flac: str = "flac"
    ffmpeg: str = "ffmpeg"


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls application logging behavior including log levels, file output,
    rotation, and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


class Settings:
    """
    Main settings class that manages all configuration

    The class handles:
    - Loading configuration from YAML files
    - Overriding with environment variables
    - Validating configuration values
    - Saving configuration back to files
    """

    def __init__(self, config_path: Optional[str] = None, load: bool = True):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
            load: When False only defaults are used (handy for tests)
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".audiomirror"
        self.loaded_from: Optional[Path] = None

        self.library = LibraryConfig()
        self.sync = SyncConfig()
        self.mp3 = MP3Config()
        self.lossy = LossyConfig()
        self.cover = CoverConfig()
        self.tools = ToolsConfig()
        self.logging = LoggingConfig()

        if load:
            self._load_config()
            self._load_environment_variables()

    def _sections(self) -> Dict[str, Any]:
        return {
            'library': self.library,
            'sync': self.sync,
            'mp3': self.mp3,
            'lossy': self.lossy,
            'cover': self.cover,
            'tools': self.tools,
            'logging': self.logging,
        }

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in multiple locations in order of
        precedence. The first file found will be used. An explicitly given
        path that does not exist is an error.

        Raises:
            ConfigError: If the explicit file is missing or a file is not valid YAML
        """
        if self.config_path and not Path(self.config_path).exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}",
                details={'file_path': str(self.config_path)}
            )

        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data: Dict[str, Any] = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(
                        f"Invalid YAML in {path}: {e}",
                        details={'file_path': str(path), 'original_error': e}
                    )
                if not isinstance(config_data, dict):
                    raise ConfigError(
                        f"Config file {path} must contain a mapping",
                        details={'file_path': str(path)}
                    )
                self.loaded_from = Path(path)
                break

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist in both the config file and the dataclass
        definition are updated; unknown keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """
        Load overrides from environment variables

        Environment variables take precedence over file-based configuration.
        """
        env_mappings = {
            'AUDIOMIRROR_LIBRARY': lambda v: setattr(self.library, 'path', v),
            'AUDIOMIRROR_CONCURRENCY': lambda v: setattr(self.sync, 'concurrency', self._to_int('AUDIOMIRROR_CONCURRENCY', v)),
            'AUDIOMIRROR_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
            'AUDIOMIRROR_LAME': lambda v: setattr(self.tools, 'lame', v),
            'AUDIOMIRROR_FLAC': lambda v: setattr(self.tools, 'flac', v),
            'AUDIOMIRROR_FFMPEG': lambda v: setattr(self.tools, 'ffmpeg', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    @staticmethod
    def _to_int(name: str, value: str) -> int:
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {value!r}", details={'variable': name})

    def get_library_path(self) -> Path:
        """
        Get the expanded library path

        Returns:
            Path object for the source library
        """
        return Path(self.library.path).expanduser()

    def get_config_directory(self) -> Path:
        """Get the configuration directory (~/.audiomirror)"""
        return self.config_dir

    def effective_concurrency(self) -> int:
        """
        Get the number of transcoding workers to use

        Returns:
            Configured concurrency, or the CPU count when it is 0
        """
        if self.sync.concurrency:
            return self.sync.concurrency
        return os.cpu_count() or 1

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to file

        Args:
            path: Custom path to save config, defaults to user config directory

        Returns:
            Path the configuration was written to

        Raises:
            ConfigError: If the configuration cannot be saved
        """
        target = Path(path) if path else self.get_config_directory() / "config.yaml"

        config_data = self.to_dict()

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to save config to {target}: {e}", details={'file_path': str(target)})
        return target

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Convert all sections to plain dictionaries"""
        return {name: asdict(section) for name, section in self._sections().items()}

    def validation_errors(self) -> List[str]:
        """
        Collect every configuration problem

        Returns:
            List of human-readable error descriptions, empty if valid
        """
        errors = []

        if not 32 <= self.mp3.bitrate_threshold <= 500:
            errors.append(f"Bitrate threshold must be between 32 and 500 Kbps: {self.mp3.bitrate_threshold}")

        if not 0 <= self.mp3.quality <= 9:
            errors.append(f"MP3 quality must be between 0 and 9: {self.mp3.quality}")

        if self.sync.concurrency < 0:
            errors.append(f"Concurrency must be at least 1 (or 0 for automatic): {self.sync.concurrency}")

        if self.sync.timeout < 0:
            errors.append(f"Encoder timeout cannot be negative: {self.sync.timeout}")

        if self.lossy.codec not in LOSSY_CODECS:
            errors.append(f"Invalid lossy codec: {self.lossy.codec}")

        if self.cover.max_size < 1:
            errors.append(f"Cover max_size must be positive: {self.cover.max_size}")

        if self.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid logging level: {self.logging.level}")

        return errors

    def validate(self) -> bool:
        """
        Validate current configuration

        Returns:
            True if configuration is valid, False otherwise
        """
        return not self.validation_errors()

    def __str__(self) -> str:
        encoder = (
            f"{self.lossy.codec} @ {self.lossy.bitrate}" if self.lossy.enabled
            else f"mp3 V{self.mp3.quality} (copy <= {self.mp3.bitrate_threshold}k)"
        )
        sections = [
            f"Library: {self.library.path}",
            f"Encoder: {encoder}",
            f"Concurrency: {self.effective_concurrency()}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern, created on first use
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings
