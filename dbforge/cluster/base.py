from __future__ import annotations

from typing import Any, Protocol


class ClusterClient(Protocol):
    """Generic resource access; no code path depends on a document's kind.

    Missing resources raise ``ClusterNotFoundError``; other API failures raise
    ``ClusterError``.
    """

    async def apply(self, document: dict[str, Any]) -> dict[str, Any]:
        ...

    async def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
        ...

    async def list_by_label(
        self, api_version: str, kind: str, namespace: str, label_selector: str
    ) -> list[dict[str, Any]]:
        ...

    async def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        ...

    async def close(self) -> None:
        ...


def parse_label_selector(selector: str) -> dict[str, str]:
    # Equality-based selectors only ("k=v,k2=v2"), which is all the backends emit.
    labels: dict[str, str] = {}
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        key, sep, value = term.partition("=")
        if not sep:
            raise ValueError(f"unsupported label selector term: {term!r}")
        labels[key.strip()] = value.strip().lstrip("=")
    return labels


def split_kind_ref(ref: str) -> tuple[str, str]:
    # "postgresql.cnpg.io/v1/Cluster" -> ("postgresql.cnpg.io/v1", "Cluster"); "v1/ConfigMap" -> ("v1", "ConfigMap").
    api_version, sep, kind = ref.strip().rpartition("/")
    if not sep or not api_version or not kind:
        raise ValueError(f"invalid resource kind reference: {ref!r}")
    return api_version, kind
