"""
apps.values_store.services.values_resolver
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Deterministic, pure-function preview of Helm value layering.

Merge precedence (lowest → highest priority):
    1. **Chart defaults** - the chart's own ``values.yaml``.  Optional; the
       chart lives in another repository, so callers pass it only when they
       have a copy.
    2. **Base values** - ``base/values.yaml``.
    3. **Environment values** - ``environments/<env>/values.yaml``.

Mappings merge key by key, recursively.  Lists and scalars are atomic: a
higher layer replaces them wholesale.  An explicit ``null`` in a higher layer
removes the key, which is how Helm lets an override drop a default.

Nulls have nothing to delete in the lowest layer, so chart defaults keep
theirs as ``None`` the way Helm does.  A null inside a mapping that base or
an environment introduces, with no counterpart below it, is dropped.

ArgoCD and Helm remain the authority for the real merge; this module exists
so operators and CI can see the result before a commit is pushed.

The function is **pure**: input dicts are never mutated and the result
shares no objects with them.

Public API
----------
ValuesResolver.resolve(base, environment, chart_defaults) -> dict
ValuesResolver.get_path(values, dotted_key, default) -> object
"""
from __future__ import annotations

import copy

_MISSING = object()


class ValuesResolver:
    """
    Layers value documents the way Helm layers ``-f`` files.

    Example::

        base = {"web": {"replicaCount": 2, "image": {"repo": "app"}}}
        env = {"web": {"replicaCount": 5}, "global": {"imageTag": "a1b2c3d"}}

        ValuesResolver.resolve(base, env)
        # → {"web": {"replicaCount": 5, "image": {"repo": "app"}},
        #    "global": {"imageTag": "a1b2c3d"}}
    """

    @staticmethod
    def resolve(
        base: dict | None,
        environment: dict | None = None,
        chart_defaults: dict | None = None,
    ) -> dict:
        """
        Produce the effective values for one environment.

        Args:
            base: Parsed ``base/values.yaml``.  ``None`` is treated as ``{}``.
            environment: Parsed environment document, or ``None`` to preview
                base values alone.
            chart_defaults: Parsed chart ``values.yaml``, or ``None``.

        Returns:
            A new dict; mutating it never affects the inputs.
        """
        # chart defaults are the starting point; their nulls survive like Helm's
        result: dict = copy.deepcopy(chart_defaults) if chart_defaults else {}
        for layer in (base, environment):
            ValuesResolver._merge_into(result, layer)
        return result

    @staticmethod
    def get_path(values: dict, dotted_key: str, default: object = None) -> object:
        """
        Look up ``"a.b.c"`` in nested mappings.

        Returns *default* when any segment is missing or an intermediate value
        is not a mapping.
        """
        node: object = values
        for segment in dotted_key.split("."):
            if not isinstance(node, dict):
                return default
            node = node.get(segment, _MISSING)
            if node is _MISSING:
                return default
        return node

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_into(target: dict, layer: dict | None) -> None:
        """
        Mutate *target* in-place by applying one layer.

        *target* is always built from deep copies, so in-place updates never
        reach caller-owned objects.
        """
        if not layer:
            return

        for key, value in layer.items():
            if value is None:
                target.pop(key, None)
                continue

            current = target.get(key)
            if isinstance(value, dict) and isinstance(current, dict):
                ValuesResolver._merge_into(current, value)
            elif isinstance(value, dict):
                # nulls inside a fresh mapping have nothing to delete
                fresh: dict = {}
                ValuesResolver._merge_into(fresh, value)
                target[key] = fresh
            else:
                target[key] = copy.deepcopy(value)
