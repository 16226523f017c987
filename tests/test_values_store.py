"""
tests.test_values_store
~~~~~~~~~~~~~~~~~~~~~~~
pytest suite for the values store services.

Covers:
- loader              (YAML parsing, duplicate keys, atomic writes)
- image_tag           (normalisation and format rules)
- ValuesResolver      (unit, pure)
- ValuesLintService   (unit, pure)
- store               (filesystem-backed services over a tmp_path tree)
"""
from __future__ import annotations

import copy
from pathlib import Path

import pytest
import yaml

from apps.values_store import loader
from apps.values_store.loader import DocumentParseError
from apps.values_store.services import store
from apps.values_store.services.image_tag import (
    InvalidImageTagError,
    is_valid_image_tag,
    normalize_image_tag,
)
from apps.values_store.services.values_linter import (
    LintRequest,
    LoadedDocument,
    ValuesLintService,
)
from apps.values_store.services.values_resolver import ValuesResolver
from common.exceptions import NotFoundError, ValidationError


# ===========================================================================
# Shared realistic documents
# ===========================================================================

BASE_VALUES: dict = {
    "global": {"imageRepository": "ghcr.io/acme/shop", "imageTag": "0000000"},
    "web": {
        "replicaCount": 1,
        "resources": {"requests": {"cpu": "100m", "memory": "128Mi"}},
        "hosts": ["shop.internal"],
    },
    "featureFlags": {"newCheckout": False, "betaBanner": True},
}

PROD_VALUES: dict = {
    "global": {"imageTag": "3f9c2ab"},
    "web": {"replicaCount": 4, "hosts": ["shop.example.com"]},
    "featureFlags": {"betaBanner": None},
}

BASE_YAML = """\
# shared values
global:
  imageRepository: ghcr.io/acme/shop
  imageTag: "0000000"
web:
  replicaCount: 1
  resources:
    requests:
      cpu: 100m
      memory: 128Mi
  hosts:
    - shop.internal
featureFlags:
  newCheckout: false
  betaBanner: true
"""

PROD_YAML = """\
# prod overrides
global:
  imageTag: "3f9c2ab"
web:
  replicaCount: 4
  hosts:
    - shop.example.com
featureFlags:
  betaBanner: null
"""

STAGING_YAML = """\
global:
  imageTag: "a1b2c3d"
web:
  replicaCount: 2
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ===========================================================================
# Fixtures
# ===========================================================================

@pytest.fixture
def values_tree(tmp_path: Path, settings) -> Path:
    """
    A values tree with base, prod and staging documents, wired in as
    ``settings.VALUES_ROOT``.
    """
    write(tmp_path / "base" / "values.yaml", BASE_YAML)
    write(tmp_path / "environments" / "prod" / "values.yaml", PROD_YAML)
    write(tmp_path / "environments" / "staging" / "values.yaml", STAGING_YAML)
    settings.VALUES_ROOT = tmp_path
    return tmp_path


def _doc(path: str, values: dict) -> LoadedDocument:
    return LoadedDocument(path=path, values=values)


# ===========================================================================
# TestLoader
# ===========================================================================

class TestLoader:
    """Parsing and writing of value documents."""

    def test_empty_document_is_empty_mapping(self):
        assert loader.parse_document("", Path("x.yaml")) == {}
        assert loader.parse_document("# only a comment\n", Path("x.yaml")) == {}

    def test_invalid_yaml_raises_parse_error(self):
        with pytest.raises(DocumentParseError) as exc_info:
            loader.parse_document("web: [unclosed\n", Path("bad.yaml"))
        assert exc_info.value.code == "parse_error"
        assert exc_info.value.path == Path("bad.yaml")

    def test_non_mapping_root_rejected(self):
        with pytest.raises(DocumentParseError) as exc_info:
            loader.parse_document("- a\n- b\n", Path("list.yaml"))
        assert exc_info.value.code == "invalid_root"

    def test_duplicate_key_rejected(self):
        """PyYAML keeps the last key silently; the strict loader refuses."""
        text = "web:\n  replicaCount: 2\n  replicaCount: 3\n"
        with pytest.raises(DocumentParseError) as exc_info:
            loader.parse_document(text, Path("dup.yaml"))
        assert exc_info.value.code == "duplicate_key"
        assert "replicaCount" in exc_info.value.detail

    def test_merge_keys_are_not_duplicates(self):
        """An explicit key after ``<<: *anchor`` overrides, it does not clash."""
        text = (
            "defaults: &defaults\n"
            "  replicaCount: 1\n"
            "  port: 8080\n"
            "web:\n"
            "  <<: *defaults\n"
            "  replicaCount: 3\n"
        )
        data = loader.parse_document(text, Path("merge.yaml"))
        assert data["web"] == {"replicaCount": 3, "port": 8080}

    def test_parse_error_is_a_validation_error(self):
        """DocumentParseError renders as a 422 through the AppError handler."""
        assert issubclass(DocumentParseError, ValidationError)

    def test_undecodable_document_is_parse_error(self, tmp_path):
        path = tmp_path / "values.yaml"
        path.write_bytes(b"web:\n  name: \xff\xfe\n")
        with pytest.raises(DocumentParseError) as exc_info:
            loader.load_document(path)
        assert exc_info.value.code == "parse_error"
        assert "UTF-8" in exc_info.value.detail

    def test_dump_document_preserves_key_order(self, tmp_path):
        target = write(tmp_path / "values.yaml", "old: true\n")
        data = {"zeta": 1, "alpha": {"b": 2, "a": 1}, "tag": "1234567"}
        loader.dump_document(target, data)

        assert loader.load_document(target) == data
        assert list(loader.load_document(target)) == ["zeta", "alpha", "tag"]
        # a numeric-looking string must stay quoted to survive the round trip
        assert isinstance(loader.load_document(target)["tag"], str)
        # no temporary files left behind
        assert [p.name for p in tmp_path.iterdir()] == ["values.yaml"]

    def test_discover_environment_dirs_requires_values_file(self, tmp_path):
        write(tmp_path / "environments" / "prod" / "values.yaml", "{}\n")
        (tmp_path / "environments" / "empty").mkdir()
        write(tmp_path / "environments" / "README.md", "docs\n")

        found = loader.discover_environment_dirs(tmp_path)
        assert [name for name, _ in found] == ["prod"]

    def test_discover_without_environments_dir(self, tmp_path):
        assert loader.discover_environment_dirs(tmp_path) == []

    @pytest.mark.parametrize(
        "name, valid",
        [("prod", True), ("eu-west-1", True), ("Prod", False), ("-dev", False),
         ("dev_1", False), ("..", False)],
    )
    def test_environment_name_rules(self, name, valid):
        assert loader.is_valid_environment_name(name) is valid


# ===========================================================================
# TestImageTag
# ===========================================================================

class TestImageTag:
    """Unit tests for the global.imageTag rules."""

    def test_full_sha_truncated_to_seven(self):
        assert normalize_image_tag("3f9c2ab91e0d4c7a8b6e5f4d3c2b1a0987654321") == "3f9c2ab"

    def test_uppercase_and_whitespace_normalised(self):
        assert normalize_image_tag("  3F9C2AB\n") == "3f9c2ab"

    @pytest.mark.parametrize("bad", ["3f9c2a", "not-a-sha", "g123456", "", "a" * 41])
    def test_bad_input_rejected(self, bad):
        with pytest.raises(InvalidImageTagError):
            normalize_image_tag(bad)

    def test_non_string_rejected(self):
        with pytest.raises(InvalidImageTagError):
            normalize_image_tag(1234567)  # type: ignore[arg-type]

    def test_stored_format(self):
        assert is_valid_image_tag("3f9c2ab") is True
        assert is_valid_image_tag("3F9C2AB") is False
        assert is_valid_image_tag("3f9c2ab9") is False
        assert is_valid_image_tag(1234567) is False


# ===========================================================================
# TestValuesResolver  (unit, pure)
# ===========================================================================

class TestValuesResolver:
    """Unit tests for ValuesResolver."""

    def test_environment_wins_over_base(self):
        result = ValuesResolver.resolve(BASE_VALUES, PROD_VALUES)
        assert result["global"]["imageTag"] == "3f9c2ab"
        assert result["web"]["replicaCount"] == 4

    def test_mappings_merge_recursively(self):
        result = ValuesResolver.resolve(BASE_VALUES, PROD_VALUES)
        assert result["global"]["imageRepository"] == "ghcr.io/acme/shop"
        assert result["web"]["resources"]["requests"]["cpu"] == "100m"

    def test_lists_replaced_wholesale(self):
        result = ValuesResolver.resolve(BASE_VALUES, PROD_VALUES)
        assert result["web"]["hosts"] == ["shop.example.com"]

    def test_null_removes_key(self):
        result = ValuesResolver.resolve(BASE_VALUES, PROD_VALUES)
        assert "betaBanner" not in result["featureFlags"]
        assert result["featureFlags"]["newCheckout"] is False

    def test_chart_defaults_have_lowest_precedence(self):
        chart = {"web": {"replicaCount": 10, "port": 8080}, "serviceAccount": {"create": True}}
        result = ValuesResolver.resolve(BASE_VALUES, PROD_VALUES, chart_defaults=chart)
        assert result["web"]["replicaCount"] == 4
        assert result["web"]["port"] == 8080
        assert result["serviceAccount"] == {"create": True}

    def test_chart_default_nulls_kept(self):
        """Only a higher layer can delete; the lowest layer's nulls stay."""
        chart = {"ingress": {"className": None, "enabled": False}}
        result = ValuesResolver.resolve(BASE_VALUES, chart_defaults=chart)
        assert result["ingress"] == {"className": None, "enabled": False}

    def test_base_null_removes_chart_default(self):
        chart = {"ingress": {"className": "nginx"}}
        result = ValuesResolver.resolve({"ingress": {"className": None}}, chart_defaults=chart)
        assert result["ingress"] == {}

    def test_base_only(self):
        assert ValuesResolver.resolve(BASE_VALUES) == BASE_VALUES

    def test_inputs_not_mutated_and_result_independent(self):
        base = copy.deepcopy(BASE_VALUES)
        env = copy.deepcopy(PROD_VALUES)
        result = ValuesResolver.resolve(base, env)

        assert base == BASE_VALUES
        assert env == PROD_VALUES
        result["web"]["resources"]["requests"]["cpu"] = "999m"
        result["web"]["hosts"].append("other")
        assert base["web"]["resources"]["requests"]["cpu"] == "100m"
        assert env["web"]["hosts"] == ["shop.example.com"]

    def test_none_layers_treated_as_empty(self):
        assert ValuesResolver.resolve(None, None, None) == {}

    def test_scalar_over_mapping_replaces(self):
        result = ValuesResolver.resolve({"web": {"a": 1}}, {"web": "disabled"})
        assert result == {"web": "disabled"}

    def test_get_path(self):
        assert ValuesResolver.get_path(BASE_VALUES, "global.imageTag") == "0000000"
        assert ValuesResolver.get_path(BASE_VALUES, "global.missing", "x") == "x"
        assert ValuesResolver.get_path(BASE_VALUES, "web.replicaCount.deeper") is None


# ===========================================================================
# TestValuesLint  (unit, pure)
# ===========================================================================

class TestValuesLint:
    """Unit tests for ValuesLintService.  No filesystem access."""

    def _lint(self, base=BASE_VALUES, **environments):
        base_doc = None if base is None else _doc("base/values.yaml", base)
        envs = {
            name: (
                values
                if isinstance(values, LoadedDocument)
                else _doc(f"environments/{name}/values.yaml", values)
            )
            for name, values in environments.items()
        }
        return ValuesLintService.lint(LintRequest(base=base_doc, environments=envs))

    def test_valid_tree_passes(self):
        result = self._lint(prod=PROD_VALUES, staging={"web": {"replicaCount": 2}})
        assert result.valid is True
        assert result.errors == []
        assert result.documents_checked == 3

    def test_missing_base_reported(self):
        result = self._lint(base=None, prod=PROD_VALUES)
        assert result.valid is False
        assert [e["code"] for e in result.errors] == ["missing_document"]

    def test_load_failure_reported_with_its_code(self):
        broken = LoadedDocument(
            path="environments/prod/values.yaml",
            error_code="duplicate_key",
            error_message="found duplicate key 'web'",
        )
        result = self._lint(prod=broken)
        assert result.valid is False
        assert result.errors[0]["code"] == "duplicate_key"
        assert result.errors[0]["document"] == "environments/prod/values.yaml"

    def test_bad_image_tag_format(self):
        result = self._lint(prod={"global": {"imageTag": "latest"}})
        assert result.valid is False
        err = result.errors[0]
        assert err["code"] == "invalid_image_tag"
        assert err["field"] == "global.imageTag"

    def test_unquoted_numeric_tag_gets_quoting_hint(self):
        """``imageTag: 1234567`` parses as an int; the message says to quote it."""
        result = self._lint(prod={"global": {"imageTag": 1234567}})
        assert result.errors[0]["code"] == "invalid_image_tag"
        assert "Quote" in result.errors[0]["message"]

    def test_image_tag_checked_in_base_too(self):
        base = copy.deepcopy(BASE_VALUES)
        base["global"]["imageTag"] = "ABCDEFG"
        result = self._lint(base=base)
        assert result.errors[0]["document"] == "base/values.yaml"

    def test_null_image_tag_allowed(self):
        assert self._lint(prod={"global": {"imageTag": None}}).valid is True

    def test_absent_image_tag_allowed(self):
        assert self._lint(prod={"web": {"replicaCount": 2}}).valid is True

    def test_mapping_vs_scalar_conflict(self):
        result = self._lint(prod={"web": {"resources": "small"}})
        assert result.valid is False
        err = result.errors[0]
        assert err["code"] == "type_conflict"
        assert err["field"] == "web.resources"
        assert "scalar" in err["message"] and "mapping" in err["message"]

    def test_list_vs_scalar_conflict(self):
        result = self._lint(prod={"web": {"hosts": "shop.example.com"}})
        assert any(
            e["code"] == "type_conflict" and e["field"] == "web.hosts"
            for e in result.errors
        )

    def test_scalar_types_may_differ(self):
        """Only the mapping/list/scalar kind matters, not int vs string."""
        assert self._lint(prod={"web": {"replicaCount": "4"}}).valid is True

    def test_null_is_compatible_with_any_kind(self):
        assert self._lint(prod={"web": {"resources": None}}).valid is True

    def test_new_keys_allowed(self):
        assert self._lint(prod={"web": {"podAnnotations": {"a": "b"}}}).valid is True

    def test_invalid_environment_name(self):
        result = self._lint(Prod={"web": {"replicaCount": 2}})
        assert [e["code"] for e in result.errors] == ["invalid_environment_name"]

    def test_all_errors_collected(self):
        """One lint() call reports every problem across every document."""
        result = self._lint(
            prod={"global": {"imageTag": "nope"}, "web": {"resources": []}},
            staging={"featureFlags": ["newCheckout"]},
        )
        codes = [e["code"] for e in result.errors]
        assert codes.count("type_conflict") == 2
        assert "invalid_image_tag" in codes
        assert len(result.errors) == 3


# ===========================================================================
# TestStore  (filesystem, tmp_path)
# ===========================================================================

class TestStore:
    """Services reading and writing the tree under settings.VALUES_ROOT."""

    def test_list_environments_sorted(self, values_tree):
        write(values_tree / "environments" / "Bad_Name" / "values.yaml", "{}\n")
        names = [env.name for env in store.list_environments()]
        assert names == ["prod", "staging"]

    def test_get_environment_unknown(self, values_tree):
        with pytest.raises(NotFoundError):
            store.get_environment("qa")

    def test_get_environment_rejects_path_segments(self, values_tree):
        with pytest.raises(NotFoundError):
            store.get_environment("../base")

    def test_get_effective_values(self, values_tree):
        result = store.get_effective_values("prod")
        assert result["global"] == {
            "imageRepository": "ghcr.io/acme/shop",
            "imageTag": "3f9c2ab",
        }
        assert result["web"]["replicaCount"] == 4
        assert "betaBanner" not in result["featureFlags"]

    def test_get_effective_values_with_chart_defaults(self, values_tree, tmp_path):
        chart = write(tmp_path / "chart" / "values.yaml", "web:\n  port: 8080\n")
        defaults = store.load_chart_defaults(chart)
        result = store.get_effective_values("staging", chart_defaults=defaults)
        assert result["web"] == {
            "port": 8080,
            "replicaCount": 2,
            "resources": {"requests": {"cpu": "100m", "memory": "128Mi"}},
            "hosts": ["shop.internal"],
        }

    def test_missing_base_document(self, values_tree):
        (values_tree / "base" / "values.yaml").unlink()
        with pytest.raises(NotFoundError):
            store.get_effective_values("prod")

    def test_lint_repository_valid(self, values_tree):
        result = store.lint_repository()
        assert result.valid is True
        assert result.documents_checked == 3

    def test_lint_repository_reports_relative_paths(self, values_tree):
        write(values_tree / "environments" / "qa" / "values.yaml", "web: [\n")
        result = store.lint_repository()
        assert result.valid is False
        assert result.errors == [{
            "document": "environments/qa/values.yaml",
            "field": "",
            "code": "parse_error",
            "message": result.errors[0]["message"],
        }]

    def test_lint_repository_reports_undecodable_document(self, values_tree):
        path = values_tree / "environments" / "qa" / "values.yaml"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"web:\n  name: \xff\xfe\n")
        result = store.lint_repository()
        assert result.valid is False
        assert [(e["document"], e["code"]) for e in result.errors] == [
            ("environments/qa/values.yaml", "parse_error"),
        ]

    def test_ensure_json_compliant_names_non_finite_paths(self):
        values = {"web": {"timeout": float("inf"), "weights": [1.0, float("nan")]}}
        with pytest.raises(ValidationError) as exc_info:
            store.ensure_json_compliant(values, environment="qa")
        assert exc_info.value.code == "non_finite_number"
        assert "web.timeout" in exc_info.value.detail
        assert "web.weights[1]" in exc_info.value.detail

    def test_ensure_json_compliant_passes_finite_values(self):
        assert store.ensure_json_compliant(BASE_VALUES, environment="base") is BASE_VALUES

    def test_lint_repository_missing_base(self, values_tree):
        (values_tree / "base" / "values.yaml").unlink()
        codes = [e["code"] for e in store.lint_repository().errors]
        assert codes == ["missing_document"]

    def test_checked_in_documents_pass_lint(self, settings):
        """The documents committed to this repository are themselves valid."""
        settings.VALUES_ROOT = Path(__file__).resolve().parent.parent
        result = store.lint_repository()
        assert result.errors == []
        assert result.documents_checked >= 2

    def test_set_image_tag_rewrites_document(self, values_tree):
        update = store.set_image_tag("staging", "9E8D7C6B5A4f3e2d1c0b")
        assert update == store.ImageTagUpdate(
            environment="staging", previous="a1b2c3d", current="9e8d7c6", changed=True
        )
        document = loader.load_document(values_tree / "environments" / "staging" / "values.yaml")
        assert document == {"global": {"imageTag": "9e8d7c6"}, "web": {"replicaCount": 2}}

    def test_set_image_tag_creates_global(self, values_tree):
        path = write(values_tree / "environments" / "qa" / "values.yaml", "web:\n  replicaCount: 1\n")
        update = store.set_image_tag("qa", "abcdef1")
        assert update.previous is None
        assert yaml.safe_load(path.read_text())["global"] == {"imageTag": "abcdef1"}

    def test_set_image_tag_unchanged_leaves_file_alone(self, values_tree):
        path = values_tree / "environments" / "prod" / "values.yaml"
        update = store.set_image_tag("prod", "3f9c2ab")
        assert update.changed is False
        assert path.read_text() == PROD_YAML

    def test_set_image_tag_requotes_unquoted_numeric_tag(self, values_tree):
        """An all-digit tag written without quotes parses as an int."""
        path = write(
            values_tree / "environments" / "qa" / "values.yaml",
            "global:\n  imageTag: 1234567\n",
        )
        assert store.lint_repository().valid is False

        update = store.set_image_tag("qa", "1234567")
        assert update.changed is True
        assert update.previous == "1234567"
        assert loader.load_document(path)["global"]["imageTag"] == "1234567"
        assert store.lint_repository().valid is True

    def test_set_image_tag_bad_sha_does_not_touch_file(self, values_tree):
        path = values_tree / "environments" / "prod" / "values.yaml"
        with pytest.raises(InvalidImageTagError):
            store.set_image_tag("prod", "latest")
        assert path.read_text() == PROD_YAML

    def test_set_image_tag_global_not_mapping(self, values_tree):
        write(values_tree / "environments" / "qa" / "values.yaml", "global: oops\n")
        with pytest.raises(ValidationError) as exc_info:
            store.set_image_tag("qa", "abcdef1")
        assert exc_info.value.code == "type_conflict"

    def test_set_image_tag_unknown_environment(self, values_tree):
        with pytest.raises(NotFoundError):
            store.set_image_tag("qa", "abcdef1")
