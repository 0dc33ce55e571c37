"""
URL configuration for config project.

The maturity scoring API is mounted under ``api/maturity/``.
"""
from django.urls import path, include

urlpatterns = [
    path('api/maturity/', include('maturity.urls')),
]
