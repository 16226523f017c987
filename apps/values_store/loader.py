"""
apps.values_store.loader
~~~~~~~~~~~~~~~~~~~~~~~~
Filesystem layout and YAML parsing for value documents.

Layout (relative to ``settings.VALUES_ROOT``)::

    base/values.yaml                 shared values
    environments/<env>/values.yaml   per-environment overrides

Documents are parsed with a strict variant of :class:`yaml.SafeLoader` that
rejects duplicate mapping keys.  Plain PyYAML keeps the last occurrence
silently, which hides exactly the kind of bad edit this tooling is meant to
catch.

Views never call this module directly; they go through
:mod:`apps.values_store.services.store`.
"""
from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

import yaml

from common.exceptions import ValidationError

BASE_DIRNAME = "base"
ENVIRONMENTS_DIRNAME = "environments"
VALUES_FILENAME = "values.yaml"

#: Environment names are used as path segments and as ArgoCD app suffixes, so
#: they are restricted to lowercase DNS labels.
ENVIRONMENT_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

_MERGE_TAG = "tag:yaml.org,2002:merge"


class DocumentParseError(ValidationError):
    """
    Raised when a value document cannot be turned into a mapping.

    ``code`` is one of ``parse_error``, ``duplicate_key`` or ``invalid_root``
    and matches the lint error code reported for the same problem.
    """

    default_code = "parse_error"
    default_detail = "Value document could not be parsed."

    def __init__(self, path: Path, detail: str, code: str | None = None) -> None:
        self.path = Path(path)
        super().__init__(detail=detail, code=code)


class DuplicateKeyError(yaml.constructor.ConstructorError):
    pass


class StrictSafeLoader(yaml.SafeLoader):
    """SafeLoader that raises :class:`DuplicateKeyError` on repeated keys."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen: dict = {}
            for key_node, _value_node in node.value:
                # merge keys legitimately repeat entries from the anchor
                if key_node.tag == _MERGE_TAG or not isinstance(key_node, yaml.ScalarNode):
                    continue
                key = self.construct_object(key_node, deep=True)
                if key in seen:
                    raise DuplicateKeyError(
                        "while constructing a mapping",
                        node.start_mark,
                        f"found duplicate key {key!r} (first defined {seen[key]})",
                        key_node.start_mark,
                    )
                seen[key] = f"on line {key_node.start_mark.line + 1}"
        return super().construct_mapping(node, deep=deep)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def base_document_path(root: Path) -> Path:
    return Path(root) / BASE_DIRNAME / VALUES_FILENAME


def environment_document_path(root: Path, name: str) -> Path:
    return Path(root) / ENVIRONMENTS_DIRNAME / name / VALUES_FILENAME


def is_valid_environment_name(name: str) -> bool:
    return bool(ENVIRONMENT_NAME_RE.match(name))


def discover_environment_dirs(root: Path) -> list[tuple[str, Path]]:
    """
    Return ``(name, document_path)`` for every directory under
    ``environments/`` that holds a ``values.yaml``, sorted by name.

    Names are returned as found on disk; callers decide whether an invalid
    name is an error (the linter) or simply not addressable (the API).
    """
    env_root = Path(root) / ENVIRONMENTS_DIRNAME
    if not env_root.is_dir():
        return []
    found = []
    for child in sorted(env_root.iterdir()):
        document = child / VALUES_FILENAME
        if child.is_dir() and document.is_file():
            found.append((child.name, document))
    return found


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------

def parse_document(text: str, path: Path) -> dict:
    """
    Parse *text* as a value document.

    An empty document (or one holding only comments) is an empty mapping.

    Raises:
        DocumentParseError: On invalid YAML, duplicate keys, or a root that
            is not a mapping.
    """
    try:
        data = yaml.load(text, Loader=StrictSafeLoader)  # noqa: S506
    except DuplicateKeyError as exc:
        raise DocumentParseError(path, f"{path}: {exc}", code="duplicate_key") from exc
    except yaml.YAMLError as exc:
        raise DocumentParseError(path, f"{path}: {exc}", code="parse_error") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DocumentParseError(
            path,
            f"{path}: document root must be a mapping; got {type(data).__name__}.",
            code="invalid_root",
        )
    return data


def load_document(path: Path) -> dict:
    """
    Read and parse the value document at *path*.

    Raises:
        DocumentParseError: Also when the file is not valid UTF-8.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            text = fh.read()
    except UnicodeDecodeError as exc:
        raise DocumentParseError(
            path, f"{path}: not valid UTF-8: {exc}", code="parse_error"
        ) from exc
    return parse_document(text, path)


def dump_document(path: Path, data: dict) -> None:
    """
    Serialise *data* to *path* atomically.

    The document is written to a temporary file in the same directory and
    renamed over the target, so readers see either the old or the new file.
    Key order is preserved; comments from the previous file are not.
    """
    path = Path(path)
    text = yaml.safe_dump(
        data,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
