"""
apps.values_store.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O-only serializers for the values store API.
No business logic; shape validation only.
"""
from rest_framework import serializers


# ---------------------------------------------------------------------------
# Environments and values
# ---------------------------------------------------------------------------

class EnvironmentListResponseSerializer(serializers.Serializer):
    """Response shape for GET /environments/."""

    environments = serializers.ListField(child=serializers.CharField())


class EnvironmentValuesResponseSerializer(serializers.Serializer):
    """Response shape for GET /environments/{env}/values/."""

    environment = serializers.CharField()
    values = serializers.JSONField()


class EffectiveValuesResponseSerializer(serializers.Serializer):
    """Response shape for GET /environments/{env}/effective-values/."""

    environment = serializers.CharField()
    effective_values = serializers.JSONField()


# ---------------------------------------------------------------------------
# Image tag
# ---------------------------------------------------------------------------

class PutImageTagRequestSerializer(serializers.Serializer):
    """Validates PUT /environments/{env}/image-tag/ request body."""

    image_tag = serializers.CharField(max_length=64, trim_whitespace=True)


class ImageTagUpdateSerializer(serializers.Serializer):
    environment = serializers.CharField()
    previous = serializers.CharField(allow_null=True)
    current = serializers.CharField()
    changed = serializers.BooleanField()


# ---------------------------------------------------------------------------
# Lint
# ---------------------------------------------------------------------------

class LintResultSerializer(serializers.Serializer):
    """Response shape for GET /lint/ (both 200 and 422)."""

    valid = serializers.BooleanField()
    documents_checked = serializers.IntegerField()
    errors = serializers.ListField(child=serializers.DictField())
