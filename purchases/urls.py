"""
URL routing for purchase API endpoints.
"""
from django.urls import path
from . import views

app_name = 'purchases'

urlpatterns = [
    path('purchases/', views.PurchaseListCreateView.as_view(), name='purchase-list'),
    path('purchases/<int:pk>/', views.PurchaseDetailView.as_view(), name='purchase-detail'),
]
