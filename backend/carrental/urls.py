from django.conf import settings
from django.contrib import admin
from django.urls import path

urlpatterns = []

if settings.ENABLE_DJANGO_ADMIN:
    urlpatterns.insert(0, path("admin/", admin.site.urls))
