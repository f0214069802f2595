from django.contrib import admin
from django.urls import include, path, re_path
from django.views.generic import RedirectView
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

api_info = openapi.Info(
    title="P2P Lending API",
    default_version="v1",
    description=(
        "Guarantor-backed peer-to-peer loans: brochures, loan requests, "
        "contracts, gateway payments and EMI repayment."
    ),
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=[permissions.AllowAny],
)

api_patterns = [
    path("lending/", include("lending.urls")),
    path("payment/", include("payment.urls")),
]

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include(api_patterns)),
    re_path(
        r"^docs/schema(?P<format>\.json|\.yaml)$",
        schema_view.without_ui(cache_timeout=0),
        name="schema-export",
    ),
    path("docs/", schema_view.with_ui("swagger", cache_timeout=0), name="swagger-docs"),
    path("docs/redoc/", schema_view.with_ui("redoc", cache_timeout=0), name="redoc-docs"),
    path("", RedirectView.as_view(pattern_name="swagger-docs", permanent=False)),
]
