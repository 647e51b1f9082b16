from __future__ import annotations

import copy
from typing import Any

from dbforge.cluster.base import parse_label_selector
from dbforge.core.errors import ClusterError, ClusterNotFoundError


_Key = tuple[str, str, str, str]


class InMemoryClusterClient:
    """Cluster stand-in for local development and tests.

    Stores applied documents keyed by apiVersion/kind/namespace/name and keeps
    the create-or-replace semantics of the real client.
    """

    def __init__(self) -> None:
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._version = 0
        # Ordered log of (verb, apiVersion, kind, namespace, name) for assertions.
        self.calls: list[tuple[str, str, str, str, str]] = []

    @staticmethod
    def _key_of(document: dict[str, Any]) -> _Key:
        metadata = document.get("metadata") or {}
        api_version = document.get("apiVersion")
        kind = document.get("kind")
        name = metadata.get("name")
        if not api_version or not kind or not name:
            raise ClusterError("document requires apiVersion, kind and metadata.name")
        return api_version, kind, metadata.get("namespace") or "default", name

    async def apply(self, document: dict[str, Any]) -> dict[str, Any]:
        key = self._key_of(document)
        self.calls.append(("apply", *key))
        stored = copy.deepcopy(document)
        existing = self._objects.get(key)
        if existing is not None and "status" in existing:
            # Status belongs to the operator, not to the applied spec.
            stored["status"] = existing["status"]
        self._version += 1
        stored.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        self._objects[key] = stored
        return copy.deepcopy(stored)

    async def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
        self.calls.append(("get", api_version, kind, namespace, name))
        obj = self._objects.get((api_version, kind, namespace, name))
        if obj is None:
            raise ClusterNotFoundError(f"{kind} {namespace}/{name} not found")
        return copy.deepcopy(obj)

    async def list_by_label(
        self, api_version: str, kind: str, namespace: str, label_selector: str
    ) -> list[dict[str, Any]]:
        self.calls.append(("list", api_version, kind, namespace, label_selector))
        wanted = parse_label_selector(label_selector)
        matches = []
        for (obj_api_version, obj_kind, obj_namespace, _name), obj in self._objects.items():
            if (obj_api_version, obj_kind, obj_namespace) != (api_version, kind, namespace):
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if all(labels.get(key) == value for key, value in wanted.items()):
                matches.append(copy.deepcopy(obj))
        return matches

    async def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        self.calls.append(("delete", api_version, kind, namespace, name))
        if self._objects.pop((api_version, kind, namespace, name), None) is None:
            raise ClusterNotFoundError(f"{kind} {namespace}/{name} not found")

    async def close(self) -> None:
        return None

    def set_status(
        self, api_version: str, kind: str, namespace: str, name: str, status: dict[str, Any]
    ) -> None:
        # Simulate the operator writing the status subtree.
        key = (api_version, kind, namespace, name)
        if key not in self._objects:
            raise ClusterNotFoundError(f"{kind} {namespace}/{name} not found")
        self._objects[key]["status"] = copy.deepcopy(status)

    def objects(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(obj) for obj in self._objects.values()]
