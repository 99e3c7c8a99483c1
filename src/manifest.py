"""Build manifest loading and validation.

A build manifest declares one container and how to provision it. The
native format is TOML; YAML is accepted for .yaml/.yml files:

    name = "web"
    entrypoint = "echo started"

    [image]
    distro = "alpine"
    release = "3.19"
    arch = "amd64"

    [[copy]]
    host = "./site"
    container = "web:/srv/site"
    archive = true

    [[shared]]
    host = "/data"
    container = "mnt/data"

    [[run]]
    cmd = "apk add nginx"

    [limits]
    cpuset_cpus = "0,3"
"""

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from common import BuildError

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool]

SUPPORTED_FORMATS = ('toml', 'yaml', 'json')


class ManifestError(BuildError):
    """Manifest is missing required fields or malformed."""


def _require_str(data: dict, key: str, where: str) -> str:
    """Fetch a required non-empty string."""
    if key not in data:
        raise ManifestError(f"{where} missing required field: {key}")
    value = data[key]
    if not isinstance(value, str):
        raise ManifestError(f"{where} field '{key}' must be a string")
    if not value:
        raise ManifestError(f"{where} field '{key}' must not be empty")
    return value


def _optional_str(data: dict, key: str, where: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ManifestError(f"{where} field '{key}' must be a string")
    return value


def _optional_bool(data: dict, key: str, where: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ManifestError(f"{where} field '{key}' must be a boolean")
    return value


def _table_list(data: dict, key: str) -> list[dict]:
    """Fetch an optional array of tables."""
    entries = data.get(key)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ManifestError(f"Manifest section '{key}' must be a list of tables")
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ManifestError(f"{key}[{i}] must be a table")
    return entries


@dataclass(frozen=True)
class ImageSpec:
    """Base image and creation options.

    Attributes:
        distro: Distribution name (e.g. alpine)
        release: Distribution release (e.g. 3.19)
        arch: Architecture (e.g. amd64)
        config: Config file handed to lxc-create
        dir: Rootfs directory override
        network: Network name
    """
    distro: str
    release: str
    arch: str
    config: Optional[str] = None
    dir: Optional[str] = None
    network: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'ImageSpec':
        if not isinstance(data, dict):
            raise ManifestError("Manifest field 'image' must be a table")
        return cls(
            distro=_require_str(data, 'distro', 'image'),
            release=_require_str(data, 'release', 'image'),
            arch=_require_str(data, 'arch', 'image'),
            config=_optional_str(data, 'config', 'image'),
            dir=_optional_str(data, 'dir', 'image'),
            network=_optional_str(data, 'network', 'image'),
        )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'distro': self.distro,
            'release': self.release,
            'arch': self.arch,
        }
        for key in ('config', 'dir', 'network'):
            if getattr(self, key) is not None:
                d[key] = getattr(self, key)
        return d


@dataclass(frozen=True)
class CopySpec:
    """Content copied in after start.

    host and container are locations: either a bare host path or
    "<container>:<path>" resolved against the container's rootfs.
    """
    host: str
    container: str
    archive: bool = False
    follow_link: bool = False

    @classmethod
    def from_dict(cls, data: dict, index: int) -> 'CopySpec':
        where = f"copy[{index}]"
        return cls(
            host=_require_str(data, 'host', where),
            container=_require_str(data, 'container', where),
            archive=_optional_bool(data, 'archive', where),
            follow_link=_optional_bool(data, 'follow_link', where),
        )


@dataclass(frozen=True)
class SharedMountSpec:
    """Persistent bind mount of a host directory."""
    host: str
    container: str

    @classmethod
    def from_dict(cls, data: dict, index: int) -> 'SharedMountSpec':
        where = f"shared[{index}]"
        return cls(
            host=_require_str(data, 'host', where),
            container=_require_str(data, 'container', where),
        )


@dataclass(frozen=True)
class RunCommand:
    """Shell command executed inside the running container."""
    cmd: str

    @classmethod
    def from_dict(cls, data: dict, index: int) -> 'RunCommand':
        return cls(cmd=_require_str(data, 'cmd', f"run[{index}]"))


@dataclass(frozen=True)
class BuildManifest:
    """Declarative description of one container build.

    Attributes:
        name: Container name
        image: Base image and creation options
        entrypoint: Script body installed under /etc/profile.d
        copy: Copies, in declared order
        shared: Shared bind mounts, in declared order
        run: Commands, in declared order
        limits: Resource limits keyed with '_' standing in for '.'
        source_path: Where the manifest was loaded from (for messages)
    """
    name: str
    image: ImageSpec
    entrypoint: Optional[str] = None
    copy: tuple[CopySpec, ...] = ()
    shared: tuple[SharedMountSpec, ...] = ()
    run: tuple[RunCommand, ...] = ()
    limits: dict[str, Scalar] = field(default_factory=dict)
    source_path: Optional[Path] = field(default=None, compare=False)

    def sorted_limits(self) -> list[tuple[str, Scalar]]:
        """Limits in the deterministic order they are applied (by key)."""
        return sorted(self.limits.items())

    @classmethod
    def from_dict(cls, data: Any, source_path: Optional[Path] = None) -> 'BuildManifest':
        """Create BuildManifest from dictionary.

        Raises:
            ManifestError: If manifest is invalid
        """
        if not isinstance(data, dict):
            raise ManifestError("Manifest must be a table (dict)")

        name = _require_str(data, 'name', 'Manifest')
        if 'image' not in data:
            raise ManifestError("Manifest missing required field: image")
        image = ImageSpec.from_dict(data['image'])

        limits = data.get('limits')
        if limits is None:
            limits = {}
        if not isinstance(limits, dict):
            raise ManifestError("Manifest section 'limits' must be a table")
        for key, value in limits.items():
            if not isinstance(value, (str, int, float, bool)):
                raise ManifestError(f"Limit '{key}' must be a scalar value")

        return cls(
            name=name,
            image=image,
            entrypoint=_optional_str(data, 'entrypoint', 'Manifest'),
            copy=tuple(CopySpec.from_dict(d, i) for i, d in enumerate(_table_list(data, 'copy'))),
            shared=tuple(SharedMountSpec.from_dict(d, i) for i, d in enumerate(_table_list(data, 'shared'))),
            run=tuple(RunCommand.from_dict(d, i) for i, d in enumerate(_table_list(data, 'run'))),
            limits=dict(limits),
            source_path=source_path,
        )

    def to_dict(self) -> dict:
        """Convert manifest to dictionary (for JSON serialization)."""
        d: dict[str, Any] = {
            'name': self.name,
            'image': self.image.to_dict(),
        }
        if self.entrypoint is not None:
            d['entrypoint'] = self.entrypoint
        if self.copy:
            d['copy'] = [
                {'host': c.host, 'container': c.container,
                 'archive': c.archive, 'follow_link': c.follow_link}
                for c in self.copy
            ]
        if self.shared:
            d['shared'] = [{'host': s.host, 'container': s.container} for s in self.shared]
        if self.run:
            d['run'] = [{'cmd': r.cmd} for r in self.run]
        if self.limits:
            d['limits'] = dict(self.limits)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _format_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        return 'yaml'
    if suffix == '.json':
        return 'json'
    return 'toml'


def parse_manifest(text: str, fmt: str = 'toml', source: Optional[Path] = None) -> BuildManifest:
    """Parse manifest text.

    Args:
        text: Raw manifest text
        fmt: One of 'toml', 'yaml', 'json'
        source: Optional source path for error messages

    Returns:
        Validated BuildManifest

    Raises:
        ManifestError: On syntax errors or invalid content
    """
    origin = source or '<string>'
    if fmt == 'toml':
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ManifestError(f"Invalid TOML in manifest {origin}: {e}")
    elif fmt == 'yaml':
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in manifest {origin}: {e}")
    elif fmt == 'json':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid manifest JSON in {origin}: {e}")
    else:
        raise ManifestError(
            f"Unsupported manifest format: {fmt}. Supported: {', '.join(SUPPORTED_FORMATS)}"
        )

    return BuildManifest.from_dict(data, source_path=source)


def load_manifest(path: Union[str, Path], fmt: Optional[str] = None) -> BuildManifest:
    """Load a manifest file; the format follows the extension unless given.

    Raises:
        ManifestError: If the file cannot be read or is invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"Manifest file not found: {path}")
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}")

    manifest = parse_manifest(text, fmt or _format_for(path), source=path)
    logger.debug(f"Loaded manifest '{manifest.name}' from {path}")
    return manifest
