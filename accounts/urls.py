"""
URL routing for session authentication endpoints.
"""
from django.urls import path
from . import views

app_name = 'accounts'

urlpatterns = [
    path('auth/login/', views.LoginView.as_view(), name='login'),
    path('auth/logout/', views.LogoutView.as_view(), name='logout'),
    path('auth/me/', views.MeView.as_view(), name='me'),
]
