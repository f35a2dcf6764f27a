"""
Main URL mapping configuration file.

Include other URLConfs from external apps using method `include()`.

It is also a good practice to keep a single URL to the root index page.

This examples uses Django's default media
files serving technique in development.
"""

from django.contrib import admin
from django.contrib.admindocs import urls as admindocs_urls
from django.urls import include, path

from server.apps.files import urls as files_urls

admin.autodiscover()

urlpatterns = [
    # Apps:
    path('', include(files_urls, namespace='files')),

    # django-admin:
    path('admin/doc/', include(admindocs_urls)),
    path('admin/', admin.site.urls),
]
