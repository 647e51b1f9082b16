"""Blueprint template rendering and structural validation.

Templates are multi-document YAML with ``{{ .Field }}`` placeholders. Rendering
substitutes placeholders from a :class:`RenderContext`, splits the text on
``---`` boundaries and parses each document into a plain mapping. Document
order is preserved because later documents may depend on earlier ones.

Go template trim markers (``{{- .Name }}``, ``{{ .Name -}}``) strip the
adjacent whitespace, and single-line comments (``{{/* ... */}}``) render to
nothing. Any other action, such as pipelines, conditionals or function calls,
is a malformed placeholder.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TYPE_CHECKING, Any

import yaml

from dbforge.core.errors import TemplateInvalidError

if TYPE_CHECKING:
    from dbforge.providers.base import ProviderDatabase


_ACTION_RE = re.compile(r"\{\{(-\s)?(.*?)(\s-)?\}\}")
_COMMENT_RE = re.compile(r"^\s*/\*.*\*/\s*$")
_FIELD_RE = re.compile(r"^\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*$")
_DOCUMENT_BOUNDARY_RE = re.compile(r"^---[^\S\n]*(?:#[^\n]*)?$", re.MULTILINE)


@dataclass(frozen=True)
class RenderContext:
    id: str
    name: str
    namespace: str
    owner_team: str
    owner_team_id: str
    tier: str
    tier_id: str
    blueprint: str
    provider: str
    cluster_name: str
    pooler_name: str

    def template_values(self) -> dict[str, str]:
        # Placeholder names as written in blueprint templates.
        return {
            "ID": self.id,
            "Name": self.name,
            "Namespace": self.namespace,
            "OwnerTeam": self.owner_team,
            "OwnerTeamID": self.owner_team_id,
            "Tier": self.tier,
            "TierID": self.tier_id,
            "Blueprint": self.blueprint,
            "Provider": self.provider,
            "ClusterName": self.cluster_name,
            "PoolerName": self.pooler_name,
        }

    @classmethod
    def for_database(cls, database: ProviderDatabase) -> RenderContext:
        return cls(
            id=database.id,
            name=database.name,
            namespace=database.namespace,
            owner_team=database.owner_team,
            owner_team_id=database.owner_team_id,
            tier=database.tier,
            tier_id=database.tier_id,
            blueprint=database.blueprint,
            provider=database.provider,
            cluster_name=database.cluster_name,
            pooler_name=database.pooler_name,
        )

    @classmethod
    def sample(cls, provider: str = "sample") -> RenderContext:
        # Representative values used to validate templates before any database exists.
        return cls(
            id="00000000-0000-0000-0000-000000000000",
            name="sample-db",
            namespace="default",
            owner_team="sample-team",
            owner_team_id="00000000-0000-0000-0000-000000000001",
            tier="sample-tier",
            tier_id="00000000-0000-0000-0000-000000000002",
            blueprint="sample-blueprint",
            provider=provider,
            cluster_name="dbforge-sample-db",
            pooler_name="dbforge-sample-db-pooler",
        )


TEMPLATE_FIELDS = tuple(RenderContext.sample().template_values())


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _substitute(template_text: str, values: dict[str, str]) -> tuple[str, list[str]]:
    parts: list[str] = []
    problems: list[str] = []
    cursor = 0
    trim_next = False
    for match in _ACTION_RE.finditer(template_text):
        literal = template_text[cursor : match.start()]
        if "{{" in literal:
            problems.append(f"line {_line_of(template_text, cursor + literal.index('{{'))}: unclosed placeholder")
        # "{{- " and " -}}" remove the whitespace between the action and the neighbouring text.
        if trim_next:
            literal = literal.lstrip()
        if match.group(1):
            literal = literal.rstrip()
        parts.append(literal)
        trim_next = bool(match.group(3))
        cursor = match.end()
        line = _line_of(template_text, match.start())
        action = match.group(2)
        if _COMMENT_RE.match(action):
            continue
        field_match = _FIELD_RE.match(action)
        if field_match is None:
            problems.append(f"line {line}: malformed placeholder {match.group(0)!r}")
            parts.append(match.group(0))
        elif field_match.group(1) not in values:
            problems.append(f"line {line}: unknown placeholder .{field_match.group(1)}")
            parts.append(match.group(0))
        else:
            parts.append(values[field_match.group(1)])
    tail = template_text[cursor:]
    if "{{" in tail:
        problems.append(f"line {_line_of(template_text, cursor + tail.index('{{'))}: unclosed placeholder")
    parts.append(tail.lstrip() if trim_next else tail)
    return "".join(parts), problems


def substitute(template_text: str, context: RenderContext) -> str:
    """Replace every placeholder; unknown or malformed placeholders are fatal."""
    rendered, problems = _substitute(template_text, context.template_values())
    if problems:
        raise TemplateInvalidError("template substitution failed", problems)
    return rendered


def split_documents(text: str) -> list[str]:
    # Empty documents (leading/trailing separators) are discarded.
    documents = []
    for part in _DOCUMENT_BOUNDARY_RE.split(text):
        stripped = part.strip()
        if stripped:
            documents.append(stripped)
    return documents


def _parse_document(document: str, index: int) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(document)
    except yaml.YAMLError as exc:
        raise TemplateInvalidError(f"document {index} is not valid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise TemplateInvalidError(f"document {index} is not a mapping")
    return parsed


def _missing_fields(document: dict[str, Any]) -> list[str]:
    missing = []
    for field_name in ("apiVersion", "kind"):
        if not document.get(field_name):
            missing.append(field_name)
    metadata = document.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        missing.append("metadata.name")
    return missing


def render(template_text: str, context: RenderContext) -> list[dict[str, Any]]:
    """Render a blueprint template into ordered resource documents."""
    rendered = substitute(template_text, context)
    documents = split_documents(rendered)
    if not documents:
        raise TemplateInvalidError("template produced no documents")
    return [_parse_document(document, index) for index, document in enumerate(documents)]


def validate_template(template_text: str, provider: str = "sample") -> list[str]:
    """Return every structural problem found in a template; empty means valid.

    The template is rendered with :meth:`RenderContext.sample` and each document
    must carry the fields the Kubernetes generic resource model requires.
    Backend-specific schemas are not checked.
    """
    if not template_text.strip():
        return ["manifests is required"]

    rendered, problems = _substitute(template_text, RenderContext.sample(provider).template_values())
    if problems:
        return problems

    documents = split_documents(rendered)
    if not documents:
        return ["manifests must contain at least one YAML document"]

    for index, document in enumerate(documents):
        try:
            parsed = _parse_document(document, index)
        except TemplateInvalidError as exc:
            problems.append(str(exc))
            continue
        for field_name in _missing_fields(parsed):
            problems.append(f"document {index} is missing {field_name}")
    return problems
