"""
apps.values_store.views
~~~~~~~~~~~~~~~~~~~~~~~~
Thin DRF API views for the values store.
All business logic is delegated to :mod:`apps.values_store.services`.

Endpoints
---------
GET    /environments/                         – List environments
GET    /environments/{env}/values/            – Raw environment document
GET    /environments/{env}/effective-values/  – Base + environment, merged
PUT    /environments/{env}/image-tag/         – Rewrite global.imageTag
GET    /lint/                                 – Lint every document
"""
from __future__ import annotations

from dataclasses import asdict

from django.conf import settings
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.values_store import services
from common.exceptions import PermissionDeniedError
from .serializers import (
    EffectiveValuesResponseSerializer,
    EnvironmentListResponseSerializer,
    EnvironmentValuesResponseSerializer,
    ImageTagUpdateSerializer,
    LintResultSerializer,
    PutImageTagRequestSerializer,
)


class EnvironmentListView(APIView):
    """GET /environments/ – names of every environment with a values.yaml."""

    @extend_schema(
        summary="List Environments",
        responses={200: EnvironmentListResponseSerializer},
        tags=["Environments"],
    )
    def get(self, request: Request) -> Response:
        environments = services.list_environments()
        return Response(
            {"environments": [env.name for env in environments]},
            status=status.HTTP_200_OK,
        )


class EnvironmentValuesView(APIView):
    """GET /environments/{env}/values/ – the override document as stored."""

    @extend_schema(
        summary="Get Environment Values",
        description="Returns environments/<env>/values.yaml parsed, without merging.",
        responses={
            200: EnvironmentValuesResponseSerializer,
            404: OpenApiResponse(description="Environment not found."),
            422: OpenApiResponse(
                description="Document could not be parsed or holds .inf/.nan."
            ),
        },
        tags=["Environments"],
    )
    def get(self, request: Request, env: str) -> Response:
        values = services.ensure_json_compliant(
            services.get_environment_values(env), environment=env
        )
        return Response(
            {"environment": env, "values": values},
            status=status.HTTP_200_OK,
        )


class EffectiveValuesView(APIView):
    """GET /environments/{env}/effective-values/ – base layered with env."""

    @extend_schema(
        summary="Get Effective Values",
        description=(
            "Layers base/values.yaml and environments/<env>/values.yaml the way "
            "Helm does (environment wins; mappings merge, lists and scalars "
            "replace, null deletes).  Chart defaults are not included."
        ),
        responses={
            200: EffectiveValuesResponseSerializer,
            404: OpenApiResponse(description="Environment or base document not found."),
            422: OpenApiResponse(
                description="A document could not be parsed or holds .inf/.nan."
            ),
        },
        tags=["Environments"],
    )
    def get(self, request: Request, env: str) -> Response:
        effective_values = services.ensure_json_compliant(
            services.get_effective_values(env), environment=env
        )
        return Response(
            {"environment": env, "effective_values": effective_values},
            status=status.HTTP_200_OK,
        )


class ImageTagView(APIView):
    """PUT /environments/{env}/image-tag/ – point env at a new image."""

    @extend_schema(
        summary="Set Image Tag",
        description=(
            "Normalises the supplied git SHA to 7 lowercase characters and writes "
            "it to global.imageTag.  Disabled unless VALUES_WRITE_ENABLED is set."
        ),
        request=PutImageTagRequestSerializer,
        responses={
            200: ImageTagUpdateSerializer,
            400: OpenApiResponse(description="Not a git SHA."),
            403: OpenApiResponse(description="Writes are disabled."),
            404: OpenApiResponse(description="Environment not found."),
        },
        tags=["Environments"],
    )
    def put(self, request: Request, env: str) -> Response:
        if not settings.VALUES_WRITE_ENABLED:
            raise PermissionDeniedError("Writing value documents is disabled.")

        serializer = PutImageTagRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        update = services.set_image_tag(env, serializer.validated_data["image_tag"])
        return Response(
            ImageTagUpdateSerializer(asdict(update)).data,
            status=status.HTTP_200_OK,
        )


class LintView(APIView):
    """GET /lint/ – run every structural check over the values tree."""

    @extend_schema(
        summary="Lint Value Documents",
        responses={
            200: LintResultSerializer,
            422: LintResultSerializer,
        },
        tags=["Lint"],
    )
    def get(self, request: Request) -> Response:
        result = services.lint_repository()
        return Response(
            LintResultSerializer(asdict(result)).data,
            status=(
                status.HTTP_200_OK
                if result.valid
                else status.HTTP_422_UNPROCESSABLE_ENTITY
            ),
        )
