"""URL configuration for files app."""

from django.urls import re_path

from server.apps.files.views import files_endpoint

app_name = 'files'

urlpatterns = [
    re_path(
        r'^files(?:/(?P<resource>[^/]+))?/?$',
        files_endpoint,
        name='files',
    ),
]
