"""
apps.values_store.services.values_linter
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Structural sanity checks over the value documents of the repository.

The checks catch, before a commit lands, the mistakes that would otherwise
only surface when ArgoCD renders the chart: unparsable YAML, a malformed
image tag, or an environment override whose shape no longer matches the base
document.

This module is **pure Python**: it works on documents that
:mod:`apps.values_store.services.store` has already read from disk, so it can
be exercised in plain ``pytest`` tests without touching the filesystem.

Public API
----------
LoadedDocument    – One document as read from disk (values or load failure)
LintRequest       – Input dataclass
LintResult        – Output dataclass
ValuesLintService – Single-entry-point linter
"""
from __future__ import annotations

from dataclasses import dataclass, field

from apps.values_store.loader import is_valid_environment_name
from .image_tag import IMAGE_TAG_KEY, describe_invalid_image_tag, is_valid_image_tag
from .values_resolver import ValuesResolver


# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

#: A single lint error dict with "document", "field", "code" and "message" keys.
ErrorDict = dict[str, str]

_MISSING = object()


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LoadedDocument:
    """
    A value document after an attempt to load it.

    Exactly one of ``values`` and ``error_code`` is set.

    Attributes:
        path: Repository-relative path used in reports, e.g.
            ``"environments/prod/values.yaml"``.
        values: The parsed mapping, or ``None`` if loading failed.
        error_code: Load failure code (``parse_error``, ``duplicate_key``,
            ``invalid_root``), or ``None``.
        error_message: Human-readable load failure, or ``""``.
    """

    path: str
    values: dict | None = None
    error_code: str | None = None
    error_message: str = ""

    @property
    def loaded(self) -> bool:
        return self.values is not None


@dataclass
class LintRequest:
    """
    Attributes:
        base: The base document, or ``None`` when ``base/values.yaml`` does
            not exist.
        environments: Environment name → document, for every directory under
            ``environments/`` that holds a ``values.yaml``.
    """

    base: LoadedDocument | None
    environments: dict[str, LoadedDocument] = field(default_factory=dict)


@dataclass
class LintResult:
    """
    Result of a lint run performed by :class:`ValuesLintService`.

    Attributes:
        valid: ``True`` iff no errors were found.
        documents_checked: Number of documents present on disk.
        errors: List of error dicts, each with keys:

            - ``"document"`` – repository-relative path
            - ``"field"``    – dot-separated key path, ``""`` for whole-file errors
            - ``"code"``     – machine-readable error code (see below)
            - ``"message"``  – human-readable description

            ============================  ===========================================
            Code                          Meaning
            ============================  ===========================================
            ``missing_document``          ``base/values.yaml`` does not exist.
            ``parse_error``               Document is not valid YAML.
            ``duplicate_key``             A mapping declares the same key twice.
            ``invalid_root``              Document root is not a mapping.
            ``invalid_environment_name``  Directory name is not a DNS label.
            ``invalid_image_tag``         ``global.imageTag`` not 7 lowercase hex.
            ``type_conflict``             Key is a mapping/list/scalar in one
                                          document and a different kind in base.
            ============================  ===========================================
    """

    valid: bool
    documents_checked: int = 0
    errors: list[ErrorDict] = field(default_factory=list)


def _kind(value: object) -> str | None:
    """Classify *value* for merge compatibility; ``None`` fits every kind."""
    if value is None:
        return None
    if isinstance(value, dict):
        return "mapping"
    if isinstance(value, list):
        return "list"
    return "scalar"


# ---------------------------------------------------------------------------
# Linter
# ---------------------------------------------------------------------------

class ValuesLintService:
    """
    Checks a set of value documents for structural problems.

    All rules are evaluated and **all errors are accumulated** before
    returning; the linter never short-circuits on the first failure.

    Usage::

        result = ValuesLintService.lint(LintRequest(base=..., environments=...))
        if not result.valid:
            for err in result.errors:
                print(err["document"], err["field"], err["code"], err["message"])
    """

    @staticmethod
    def lint(request: LintRequest) -> LintResult:
        """
        Enforces, in order:

        1. The base document exists.
        2. Every document loaded (YAML syntax, unique keys, mapping root).
        3. Environment directory names are valid.
        4. ``global.imageTag`` format, in every document that sets it.
        5. Kind compatibility of every environment key with base.
        """
        errors: list[ErrorDict] = []
        documents: list[LoadedDocument] = []

        # ── Rule 1: base document present ─────────────────────────────────
        if request.base is None:
            errors.append({
                "document": "base/values.yaml",
                "field": "",
                "code": "missing_document",
                "message": "base/values.yaml does not exist.",
            })
        else:
            documents.append(request.base)

        documents.extend(request.environments.values())

        # ── Rule 2: load failures ─────────────────────────────────────────
        for document in documents:
            if not document.loaded:
                errors.append({
                    "document": document.path,
                    "field": "",
                    "code": document.error_code or "parse_error",
                    "message": document.error_message,
                })

        # ── Rule 3: environment names ─────────────────────────────────────
        for name, document in request.environments.items():
            if not is_valid_environment_name(name):
                errors.append({
                    "document": document.path,
                    "field": "",
                    "code": "invalid_environment_name",
                    "message": (
                        f'Environment directory "{name}" must be a lowercase '
                        "DNS label (a-z, 0-9 and '-')."
                    ),
                })

        # ── Rule 4: image tag format ──────────────────────────────────────
        for document in documents:
            if document.loaded:
                ValuesLintService._check_image_tag(document, errors)

        # ── Rule 5: kind compatibility with base ──────────────────────────
        if request.base is not None and request.base.loaded:
            for document in request.environments.values():
                if document.loaded:
                    ValuesLintService._check_kinds(
                        base=request.base.values,
                        override=document.values,
                        prefix="",
                        document=document,
                        errors=errors,
                    )

        return LintResult(
            valid=len(errors) == 0,
            documents_checked=len(documents),
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_image_tag(document: LoadedDocument, errors: list[ErrorDict]) -> None:
        value = ValuesResolver.get_path(document.values, IMAGE_TAG_KEY, _MISSING)
        # null deletes the key in Helm; nothing to validate
        if value is _MISSING or value is None:
            return
        if not is_valid_image_tag(value):
            errors.append({
                "document": document.path,
                "field": IMAGE_TAG_KEY,
                "code": "invalid_image_tag",
                "message": describe_invalid_image_tag(value),
            })

    @staticmethod
    def _check_kinds(
        base: dict,
        override: dict,
        prefix: str,
        document: LoadedDocument,
        errors: list[ErrorDict],
    ) -> None:
        """
        Walk *override* alongside *base*, reporting keys whose kind differs.

        Keys absent from base are new and always allowed.  Recurses only into
        keys that are mappings on both sides.
        """
        for key, override_value in override.items():
            if key not in base:
                continue
            base_value = base[key]
            field_path = f"{prefix}{key}"
            base_kind = _kind(base_value)
            override_kind = _kind(override_value)

            if base_kind is None or override_kind is None:
                continue
            if base_kind != override_kind:
                errors.append({
                    "document": document.path,
                    "field": field_path,
                    "code": "type_conflict",
                    "message": (
                        f'"{field_path}" is a {override_kind} here but a '
                        f"{base_kind} in base/values.yaml."
                    ),
                })
                continue
            if base_kind == "mapping":
                ValuesLintService._check_kinds(
                    base=base_value,
                    override=override_value,
                    prefix=f"{field_path}.",
                    document=document,
                    errors=errors,
                )
