"""
URL configuration for the clipdrop project.

All routes are JSON endpoints except the liveness check and the file stream.
"""

from django.urls import path

from clips.views import check_view, download_view, file_view, health_view

urlpatterns = [
    path('', health_view, name='health'),
    path('check', check_view, name='check'),
    path('download', download_view, name='download'),
    # Handles may encode a request subdirectory, so accept slashes after decoding
    path('file/<path:handle>', file_view, name='file'),
]
