# backoffice/urls.py
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("trading.urls")),
    path("api/", include("treasury.urls")),
]
