from __future__ import annotations

from typing import Any


LABEL_DATABASE = "dbforge.io/database"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "dbforge"


def inject_labels(document: dict[str, Any], database_name: str) -> dict[str, Any]:
    # Add the ownership labels in place, keeping any labels the blueprint already sets.
    metadata = document.setdefault("metadata", {})
    labels = metadata.get("labels") or {}
    labels[LABEL_DATABASE] = database_name
    labels[LABEL_MANAGED_BY] = MANAGED_BY_VALUE
    metadata["labels"] = labels
    return document


def database_selector(database_name: str) -> str:
    return f"{LABEL_DATABASE}={database_name}"
