"""
Contact Form URL Configuration
"""
from django.urls import path
from .views import ContactFormSubmitView, ContactFormConfigView

app_name = 'contact'

# Public URLs (no auth required)
urlpatterns = [
    path('submit', ContactFormSubmitView.as_view(), name='submit'),
    path('config', ContactFormConfigView.as_view(), name='config'),
]
