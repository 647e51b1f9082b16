from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from dbforge.providers.base import Provider


class ProviderRegistry:
    """Name-keyed providers, fixed when the process starts.

    There is no register/unregister after construction. Looking up an unknown
    name returns ``None``; callers decide whether that is fatal.
    """

    def __init__(self, providers: Mapping[str, Provider] | None = None) -> None:
        self._providers: Mapping[str, Provider] = MappingProxyType(dict(providers or {}))

    def get(self, name: str) -> Provider | None:
        return self._providers.get(name)

    def has(self, name: str) -> bool:
        return name in self._providers

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __len__(self) -> int:
        return len(self._providers)
