"""
apps.values_store.services package.
"""
from .store import (  # noqa: F401
    Environment,
    ImageTagUpdate,
    ensure_json_compliant,
    get_base_values,
    get_effective_values,
    get_environment,
    get_environment_values,
    lint_repository,
    list_environments,
    load_chart_defaults,
    set_image_tag,
)
