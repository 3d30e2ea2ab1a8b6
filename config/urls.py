"""URL configuration for the AI proxy. Every path is owned by the proxy app."""

from django.urls import include, path

urlpatterns = [
    path('', include('proxy.urls')),
]
