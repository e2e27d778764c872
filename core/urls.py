"""
URL configuration for core project.

Public API only; there is no admin site and no authentication.
"""
from django.urls import path, include

urlpatterns = [
    path('api/contact/', include('contact.urls')),  # Public contact form
]
