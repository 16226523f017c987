"""
apps.values_store.services.store
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
All business logic for the values store.

Views and management commands must call only these functions.  No business
logic lives in views, serializers or commands.

Responsibilities
----------------
- Discovering environments under ``settings.VALUES_ROOT``.
- Loading base and environment documents.
- Resolving effective values via
  :class:`~apps.values_store.services.values_resolver.ValuesResolver`.
- Linting the whole tree via
  :class:`~apps.values_store.services.values_linter.ValuesLintService`.
- Rewriting ``global.imageTag`` for one environment.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path

import structlog
from django.conf import settings

from apps.values_store import loader
from common.exceptions import NotFoundError, ValidationError
from .image_tag import is_valid_image_tag, normalize_image_tag
from .values_linter import LintRequest, LintResult, LoadedDocument, ValuesLintService
from .values_resolver import ValuesResolver

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Environment:
    name: str
    path: Path


@dataclass(frozen=True)
class ImageTagUpdate:
    """Outcome of :func:`set_image_tag`."""

    environment: str
    previous: str | None
    current: str
    changed: bool


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def get_values_root() -> Path:
    """Return the configured root of the values tree."""
    return Path(settings.VALUES_ROOT)


def list_environments() -> list[Environment]:
    """
    Return every addressable environment, sorted by name.

    Directories whose name is not a valid environment name are skipped here;
    :func:`lint_repository` reports them.
    """
    return [
        Environment(name=name, path=path)
        for name, path in loader.discover_environment_dirs(get_values_root())
        if loader.is_valid_environment_name(name)
    ]


def get_environment(name: str) -> Environment:
    """
    Fetch an :class:`Environment` by name.

    The name is validated before it is joined onto a filesystem path.

    Raises:
        NotFoundError: If the name is invalid or has no ``values.yaml``.
    """
    if not loader.is_valid_environment_name(name):
        raise NotFoundError(f"Environment '{name}' not found.")
    path = loader.environment_document_path(get_values_root(), name)
    if not path.is_file():
        raise NotFoundError(f"Environment '{name}' not found.")
    return Environment(name=name, path=path)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def get_base_values() -> dict:
    """
    Return the parsed ``base/values.yaml``.

    Raises:
        NotFoundError: If the base document does not exist.
        DocumentParseError: If it cannot be parsed.
    """
    path = loader.base_document_path(get_values_root())
    if not path.is_file():
        raise NotFoundError(f"Base document {path} not found.")
    return loader.load_document(path)


def get_environment_values(name: str) -> dict:
    """Return the parsed override document of environment *name*."""
    environment = get_environment(name)
    return loader.load_document(environment.path)


def get_effective_values(name: str, *, chart_defaults: dict | None = None) -> dict:
    """
    Return the values Helm will see for environment *name*.

    Merges ``chart defaults → base → environment`` using
    :class:`~apps.values_store.services.values_resolver.ValuesResolver`.

    Raises:
        NotFoundError: If the environment or the base document is missing.
        DocumentParseError: If either document cannot be parsed.
    """
    environment_values = get_environment_values(name)
    base_values = get_base_values()
    return ValuesResolver.resolve(
        base=base_values,
        environment=environment_values,
        chart_defaults=chart_defaults,
    )


def _non_finite_paths(value: object, prefix: str = "") -> list[str]:
    if isinstance(value, float) and not math.isfinite(value):
        return [prefix or "<root>"]
    if isinstance(value, dict):
        return [
            path
            for key, item in value.items()
            for path in _non_finite_paths(item, f"{prefix}.{key}" if prefix else str(key))
        ]
    if isinstance(value, list):
        return [
            path
            for index, item in enumerate(value)
            for path in _non_finite_paths(item, f"{prefix}[{index}]")
        ]
    return []


def ensure_json_compliant(values: dict, *, environment: str) -> dict:
    """
    Return *values* unchanged if it can be rendered as strict JSON.

    YAML allows ``.inf`` and ``.nan``; JSON does not.

    Raises:
        ValidationError: ``non_finite_number`` naming every offending key.
    """
    paths = _non_finite_paths(values)
    if paths:
        raise ValidationError(
            f"Values of environment '{environment}' hold non-finite numbers "
            f"that cannot be returned as JSON: {', '.join(paths)}.",
            code="non_finite_number",
        )
    return values


def load_chart_defaults(path: str | Path) -> dict:
    """Load a chart's ``values.yaml`` supplied by the caller."""
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"Chart values file {path} not found.")
    return loader.load_document(path)


# ---------------------------------------------------------------------------
# Lint
# ---------------------------------------------------------------------------

def _load_for_lint(path: Path, root: Path) -> LoadedDocument:
    relative = path.relative_to(root).as_posix()
    try:
        values = loader.load_document(path)
    except loader.DocumentParseError as exc:
        return LoadedDocument(
            path=relative, error_code=exc.code, error_message=exc.detail
        )
    return LoadedDocument(path=relative, values=values)


def lint_repository() -> LintResult:
    """
    Read every document under the values root and lint them together.

    Returns:
        The :class:`LintResult`; this function does not raise on lint
        failures.
    """
    root = get_values_root()
    base_path = loader.base_document_path(root)
    base = _load_for_lint(base_path, root) if base_path.is_file() else None
    environments = {
        name: _load_for_lint(path, root)
        for name, path in loader.discover_environment_dirs(root)
    }

    result = ValuesLintService.lint(LintRequest(base=base, environments=environments))
    if result.valid:
        logger.info("values_lint_passed", documents=result.documents_checked)
    else:
        logger.warning(
            "values_lint_failed",
            documents=result.documents_checked,
            error_count=len(result.errors),
        )
    return result


# ---------------------------------------------------------------------------
# Image tag promotion
# ---------------------------------------------------------------------------

def set_image_tag(name: str, sha: str) -> ImageTagUpdate:
    """
    Point environment *name* at the image built from commit *sha*.

    Steps:

    1. Normalise *sha* to the 7-character tag (400 on bad input).
    2. Fetch the environment (404 if unknown) and load its document.
    3. Set ``global.imageTag``, creating the ``global`` mapping if needed.
    4. Write the document back, unless the tag is already current.

    Raises:
        InvalidImageTagError: If *sha* is not a git SHA.
        NotFoundError: If the environment does not exist.
        DocumentParseError: If the environment document cannot be parsed.
        ValidationError: If ``global`` exists but is not a mapping.
    """
    tag = normalize_image_tag(sha)
    environment = get_environment(name)
    document = loader.load_document(environment.path)

    global_values = document.setdefault("global", {})
    if global_values is None:
        global_values = document["global"] = {}
    if not isinstance(global_values, dict):
        raise ValidationError(
            f'"global" in {environment.path} must be a mapping; '
            f"got {type(global_values).__name__}.",
            code="type_conflict",
        )

    raw_previous = global_values.get("imageTag")
    previous = None if raw_previous is None else str(raw_previous)
    # an unquoted numeric tag reads as int and must be rewritten quoted
    if is_valid_image_tag(raw_previous) and raw_previous == tag:
        logger.info("image_tag_unchanged", environment=name, image_tag=tag)
        return ImageTagUpdate(environment=name, previous=previous, current=tag, changed=False)

    global_values["imageTag"] = tag
    loader.dump_document(environment.path, document)

    logger.info(
        "image_tag_updated",
        environment=name,
        previous=previous,
        image_tag=tag,
    )
    return ImageTagUpdate(environment=name, previous=previous, current=tag, changed=True)
