"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Reconciliation
    path('inventory/analysis/', views.InventoryAnalysisView.as_view(), name='inventory-analysis'),
    path('inventory/unified-analysis/', views.UnifiedInventoryAnalysisView.as_view(), name='inventory-unified-analysis'),
    path('inventory/unified-sales/', views.UnifiedSalesView.as_view(), name='inventory-unified-sales'),

    # Stock
    path('inventory/', views.InventoryWithSalesView.as_view(), name='inventory-list'),
    path('inventory/restock/', views.RestockView.as_view(), name='inventory-restock'),
    path('inventory/alerts/', views.LowStockAlertsView.as_view(), name='inventory-alerts'),
    path('inventory/alerts/pdf/', views.LowStockPdfView.as_view(), name='inventory-alerts-pdf'),
    path('inventory/connection/', views.ConnectionCheckView.as_view(), name='inventory-connection'),

    # Products
    path('products/', views.ProductListView.as_view(), name='product-list'),
    path('products/bulk/', views.ProductBulkCreateView.as_view(), name='product-bulk-create'),
    path('products/<str:pk>/', views.ProductDetailView.as_view(), name='product-detail'),

    # Manual sales
    path('sold-products/', views.SoldProductListCreateView.as_view(), name='sold-product-list'),
    path('sold-products/<str:pk>/', views.SoldProductDetailView.as_view(), name='sold-product-detail'),
]
