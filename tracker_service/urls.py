"""URL configuration for the workflow tracker service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("workflows.urls")),
    path("api/", include("projects.urls")),
    path("api/", include("accounts.urls")),
]
