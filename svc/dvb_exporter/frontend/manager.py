# dvb_exporter/frontend/manager.py
from __future__ import annotations
import logging
import os
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from .interface import FrontendDevice
from .linuxdvb import DvbFrontend

logger = logging.getLogger(__name__)

ADAPTER_PREFIX = "adapter"
FRONTEND_PREFIX = "frontend"
_INDEX_RE = re.compile(r"[0-9]+")

Opener = Callable[[str], FrontendDevice]


class RegistryError(Exception):
    """Fatal error while building the device registry."""

    exit_code = 1


class BasePathNotFoundError(RegistryError):
    exit_code = 1

    def __init__(self, base_path: str) -> None:
        super().__init__(f"Base path {base_path} does not exist")
        self.base_path = base_path


class DeviceOpenError(RegistryError):
    exit_code = 2

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(f"Error opening frontend {path}: {cause}")
        self.path = path
        self.cause = cause


@dataclass(frozen=True, order=True)
class DeviceIdentity:
    adapter: int
    frontend: int

    def labels(self) -> Tuple[Tuple[str, str], ...]:
        return (("adapter", str(self.adapter)), ("frontend", str(self.frontend)))


@dataclass(frozen=True)
class DeviceLocation:
    adapter_path: str
    frontend_path: str
    identity: DeviceIdentity


@dataclass(frozen=True)
class FrontendEntry:
    identity: DeviceIdentity
    path: str
    adapter_path: str
    device: FrontendDevice


@dataclass(frozen=True)
class AdapterEntry:
    id: int
    path: str
    frontends: Mapping[str, FrontendEntry]


def _parse_index(name: str, prefix: str) -> Optional[int]:
    """Return N for '<prefix>N', None (with a warning) if the suffix is not a number."""
    suffix = name[len(prefix):]
    if not _INDEX_RE.fullmatch(suffix):
        logger.warning(f"Invalid {prefix} number: {suffix!r} in {name!r}, skipping")
        return None
    return int(suffix)


def _list_prefixed(directory: str, prefix: str) -> List[Tuple[str, int]]:
    """Entries of `directory` named '<prefix>N', as (path, N), sorted by path."""
    found: List[Tuple[str, int]] = []
    for name in sorted(os.listdir(directory)):
        if not name.startswith(prefix):
            continue
        index = _parse_index(name, prefix)
        if index is None:
            continue
        found.append((os.path.join(directory, name), index))
    return found


def discover(base_path: str) -> List[DeviceLocation]:
    """
    Scan `base_path` for adapter<N>/frontend<M> device nodes.

    Pure discovery, nothing is opened. The result is sorted by path, so
    scanning an unchanged tree twice gives the same list. Entries with a
    malformed numeric suffix and adapters that cannot be listed are logged
    and skipped.
    """
    locations: List[DeviceLocation] = []
    try:
        adapters = _list_prefixed(base_path, ADAPTER_PREFIX)
    except OSError as e:
        logger.error(f"Error finding adapters in {base_path}: {e}")
        return locations

    for adapter_path, adapter_id in adapters:
        try:
            frontends = _list_prefixed(adapter_path, FRONTEND_PREFIX)
        except OSError as e:
            logger.error(f"Error finding frontends in {adapter_path}: {e}")
            continue
        for frontend_path, frontend_id in frontends:
            locations.append(
                DeviceLocation(
                    adapter_path=adapter_path,
                    frontend_path=frontend_path,
                    identity=DeviceIdentity(adapter_id, frontend_id),
                )
            )
    return locations


class DeviceRegistry:
    """
    Immutable set of opened frontends, keyed by adapter path then frontend path.

    Built once at startup by scan(); afterwards only read, so request
    threads share it without locking.
    """

    def __init__(self, adapters: Mapping[str, AdapterEntry]) -> None:
        self.adapters: Mapping[str, AdapterEntry] = MappingProxyType(dict(adapters))

    @classmethod
    def scan(cls, base_path: str, opener: Opener = DvbFrontend.open_ro) -> "DeviceRegistry":
        """
        Discover and open every frontend under `base_path`.

        Raises BasePathNotFoundError if `base_path` is missing and
        DeviceOpenError if a discovered frontend cannot be opened.
        """
        if not os.path.exists(base_path):
            raise BasePathNotFoundError(base_path)

        frontends_by_adapter: Dict[str, Dict[str, FrontendEntry]] = {}
        adapter_ids: Dict[str, int] = {}
        seen: Dict[DeviceIdentity, str] = {}

        for loc in discover(base_path):
            adapter_frontends = frontends_by_adapter.setdefault(loc.adapter_path, {})
            if loc.frontend_path in adapter_frontends:
                continue
            if loc.identity in seen:
                logger.warning(
                    f"{loc.frontend_path} has the same identity as {seen[loc.identity]} "
                    f"(adapter={loc.identity.adapter} frontend={loc.identity.frontend}), skipping"
                )
                continue

            logger.info(
                f"Found a device: adapter={loc.identity.adapter} frontend={loc.identity.frontend}"
            )
            try:
                device = opener(loc.frontend_path)
            except OSError as e:
                raise DeviceOpenError(loc.frontend_path, e) from e

            seen[loc.identity] = loc.frontend_path
            adapter_ids[loc.adapter_path] = loc.identity.adapter
            adapter_frontends[loc.frontend_path] = FrontendEntry(
                identity=loc.identity,
                path=loc.frontend_path,
                adapter_path=loc.adapter_path,
                device=device,
            )

        adapters = {
            path: AdapterEntry(
                id=adapter_ids[path],
                path=path,
                frontends=MappingProxyType(frontends),
            )
            for path, frontends in frontends_by_adapter.items()
            if frontends
        }
        logger.info(f"Registered {sum(len(a.frontends) for a in adapters.values())} frontends")
        return cls(adapters)

    def frontends(self) -> Iterator[FrontendEntry]:
        for adapter_path in sorted(self.adapters):
            adapter = self.adapters[adapter_path]
            for frontend_path in sorted(adapter.frontends):
                yield adapter.frontends[frontend_path]

    def identities(self) -> List[DeviceIdentity]:
        return [f.identity for f in self.frontends()]

    def __len__(self) -> int:
        return sum(len(a.frontends) for a in self.adapters.values())
