"""Runtime configuration management.

Configuration is loaded from an optional YAML file and then overridden by
command-line flags.

Resolution order for the config file:
1. Explicit path (--config)
2. $LXCBUILD_CONFIG environment variable
3. /etc/lxcbuild/config.yaml

Example config.yaml:

    lxcpath: /srv/lxc
    logpriority: INFO
    show_stdout: false
    show_stderr: true
    report_dir: /var/log/lxcbuild
"""

import logging
import os
import shlex
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from common import BuildError, Verbosity

logger = logging.getLogger(__name__)

DEFAULT_LXCPATH = '/var/lib/lxc'
DEFAULT_CONFIG_FILE = Path('/etc/lxcbuild/config.yaml')


class ConfigError(BuildError):
    """Configuration error."""


@dataclass
class BuildConfig:
    """Settings fixed for the duration of one build.

    Attributes:
        lxcpath: Directory holding container directories
        logfile: Runtime log file passed through to every lxc-* command
        logpriority: Runtime log priority passed through to every lxc-* command
        use_lxcpath_flag: Pass --lxcpath to lxc-* commands (set when lxcpath
            is overridden, the runtime already knows its default)
        show_stdout: Show subprocess stdout
        show_stderr: Show subprocess stderr
        report_dir: Directory for build reports (None disables reports)
    """
    lxcpath: str = DEFAULT_LXCPATH
    logfile: Optional[str] = None
    logpriority: Optional[str] = None
    use_lxcpath_flag: bool = False
    show_stdout: bool = True
    show_stderr: bool = True
    report_dir: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.report_dir, str):
            self.report_dir = Path(self.report_dir)

    def global_options(self) -> str:
        """Render the global flags appended to every lxc-* command."""
        opts = ''
        if self.logfile:
            opts += f' --logfile={shlex.quote(self.logfile)}'
        if self.logpriority:
            opts += f' --logpriority={shlex.quote(self.logpriority)}'
        if self.use_lxcpath_flag:
            opts += f' --lxcpath={shlex.quote(self.lxcpath)}'
        return opts

    def verbosity(self, quiet: bool = False) -> Verbosity:
        """Derive subprocess output visibility; quiet hides both streams."""
        if quiet:
            return Verbosity.from_quiet(True)
        return Verbosity(show_stdout=self.show_stdout, show_stderr=self.show_stderr)

    def container_dir(self, name: str) -> Path:
        return Path(self.lxcpath) / name

    def config_path(self, name: str) -> Path:
        """Path of the container's persistent configuration file."""
        return self.container_dir(name) / 'config'

    def default_rootfs(self, name: str) -> Path:
        return self.container_dir(name) / 'rootfs'

    @classmethod
    def from_dict(cls, data: dict) -> 'BuildConfig':
        """Create BuildConfig from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        for flag in ('show_stdout', 'show_stderr', 'use_lxcpath_flag'):
            if flag in data and not isinstance(data[flag], bool):
                raise ConfigError(f"Config key '{flag}' must be a boolean")
        config = cls(**data)
        if 'lxcpath' in data:
            config.use_lxcpath_flag = data.get('use_lxcpath_flag', True)
        return config


def find_config_file(path: Optional[str] = None) -> Optional[Path]:
    """Locate the config file.

    An explicit path must exist. The environment and system locations are
    optional and yield None when absent.
    """
    if path:
        explicit = Path(path)
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    if env_path := os.environ.get('LXCBUILD_CONFIG'):
        candidate = Path(env_path)
        if not candidate.is_file():
            raise ConfigError(f"LXCBUILD_CONFIG={env_path} does not exist")
        return candidate

    if DEFAULT_CONFIG_FILE.is_file():
        return DEFAULT_CONFIG_FILE

    return None


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a YAML object (dict)")
    return data


def load_build_config(path: Optional[str] = None, **overrides) -> BuildConfig:
    """Load configuration from file and apply command-line overrides.

    Args:
        path: Explicit config file path
        **overrides: Values from CLI flags; None means "not given"

    Returns:
        BuildConfig instance

    Raises:
        ConfigError: If the file is missing (explicit path) or invalid
    """
    config_file = find_config_file(path)
    if config_file is not None:
        logger.debug(f"Loading config from {config_file}")
        config = BuildConfig.from_dict(_parse_yaml(config_file))
    else:
        config = BuildConfig()

    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise ConfigError(f"Unknown config override: {key}")
        setattr(config, key, value)
        if key == 'lxcpath':
            config.use_lxcpath_flag = True
    if isinstance(config.report_dir, str):
        config.report_dir = Path(config.report_dir)
    return config
