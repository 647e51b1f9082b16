from __future__ import annotations

import logging
from typing import Any

import aiohttp
from kubernetes_asyncio import config as kube_config
from kubernetes_asyncio.client import ApiClient
from kubernetes_asyncio.client.exceptions import ApiException
from kubernetes_asyncio.dynamic import DynamicClient
from kubernetes_asyncio.dynamic.exceptions import (
    ConflictError,
    DynamicApiError,
    NotFoundError,
    ResourceNotFoundError,
)

from dbforge.core.errors import ClusterConflictError, ClusterError, ClusterNotFoundError


logger = logging.getLogger(__name__)


def _translate(exc: Exception, what: str) -> ClusterError:
    # Map client exceptions onto the cluster error vocabulary used by providers.
    if isinstance(exc, (NotFoundError, ResourceNotFoundError)):
        return ClusterNotFoundError(f"{what}: not found")
    if isinstance(exc, ApiException) and exc.status == 404:
        return ClusterNotFoundError(f"{what}: not found")
    if isinstance(exc, ConflictError) or (isinstance(exc, ApiException) and exc.status == 409):
        return ClusterConflictError(f"{what}: already exists")
    return ClusterError(f"{what}: {exc}")


_CLIENT_ERRORS = (DynamicApiError, ApiException, aiohttp.ClientError, TimeoutError)


class KubernetesClusterClient:
    """Dynamic-resource client; resources are discovered from apiVersion/kind."""

    def __init__(self, api_client: ApiClient, dynamic: DynamicClient) -> None:
        self._api_client = api_client
        self._dynamic = dynamic

    @classmethod
    async def connect(cls, kubeconfig_path: str = "") -> KubernetesClusterClient:
        if kubeconfig_path:
            await kube_config.load_kube_config(config_file=kubeconfig_path)
        else:
            try:
                kube_config.load_incluster_config()
            except kube_config.ConfigException:
                await kube_config.load_kube_config()
        api_client = ApiClient()
        dynamic = await DynamicClient(api_client)
        logger.info("connected to kubernetes cluster")
        return cls(api_client, dynamic)

    async def _resource(self, api_version: str, kind: str):
        try:
            return await self._dynamic.resources.get(api_version=api_version, kind=kind)
        except _CLIENT_ERRORS as exc:
            raise _translate(exc, f"resource type {api_version}/{kind}") from exc

    async def apply(self, document: dict[str, Any]) -> dict[str, Any]:
        api_version = document["apiVersion"]
        kind = document["kind"]
        metadata = document.get("metadata") or {}
        name = metadata["name"]
        namespace = metadata.get("namespace")
        what = f"{kind} {namespace}/{name}"
        resource = await self._resource(api_version, kind)
        try:
            created = await self._dynamic.create(resource, body=document, namespace=namespace)
            return created.to_dict()
        except _CLIENT_ERRORS as exc:
            translated = _translate(exc, what)
            if not isinstance(translated, ClusterConflictError):
                raise translated from exc

        # Already exists: replace it, carrying over the live resourceVersion.
        try:
            existing = await self._dynamic.get(resource, name=name, namespace=namespace)
            body = dict(document)
            body["metadata"] = dict(metadata, resourceVersion=existing.metadata.resourceVersion)
            replaced = await self._dynamic.replace(resource, body=body, name=name, namespace=namespace)
            return replaced.to_dict()
        except _CLIENT_ERRORS as exc:
            raise _translate(exc, what) from exc

    async def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
        resource = await self._resource(api_version, kind)
        try:
            obj = await self._dynamic.get(resource, name=name, namespace=namespace)
        except _CLIENT_ERRORS as exc:
            raise _translate(exc, f"{kind} {namespace}/{name}") from exc
        return obj.to_dict()

    async def list_by_label(
        self, api_version: str, kind: str, namespace: str, label_selector: str
    ) -> list[dict[str, Any]]:
        resource = await self._resource(api_version, kind)
        try:
            listing = await self._dynamic.get(resource, namespace=namespace, label_selector=label_selector)
        except _CLIENT_ERRORS as exc:
            raise _translate(exc, f"{kind} in {namespace} ({label_selector})") from exc
        return list(listing.to_dict().get("items") or [])

    async def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        resource = await self._resource(api_version, kind)
        try:
            await self._dynamic.delete(resource, name=name, namespace=namespace)
        except _CLIENT_ERRORS as exc:
            raise _translate(exc, f"{kind} {namespace}/{name}") from exc

    async def close(self) -> None:
        await self._api_client.close()
