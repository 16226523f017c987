"""
apps.values_store.urls
~~~~~~~~~~~~~~~~~~~~~~
URL routing for the values store.
Mounted at /api/v1/ by the root URLconf.
"""
from django.urls import path

from .views import (
    EffectiveValuesView,
    EnvironmentListView,
    EnvironmentValuesView,
    ImageTagView,
    LintView,
)

urlpatterns = [
    # GET /api/v1/environments/
    path(
        "environments/",
        EnvironmentListView.as_view(),
        name="environment-list",
    ),
    # GET /api/v1/environments/<env>/values/
    path(
        "environments/<str:env>/values/",
        EnvironmentValuesView.as_view(),
        name="environment-values",
    ),
    # GET /api/v1/environments/<env>/effective-values/
    path(
        "environments/<str:env>/effective-values/",
        EffectiveValuesView.as_view(),
        name="environment-effective-values",
    ),
    # PUT /api/v1/environments/<env>/image-tag/
    path(
        "environments/<str:env>/image-tag/",
        ImageTagView.as_view(),
        name="environment-image-tag",
    ),
    # GET /api/v1/lint/
    path(
        "lint/",
        LintView.as_view(),
        name="values-lint",
    ),
]
