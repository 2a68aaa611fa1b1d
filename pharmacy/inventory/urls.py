from django.urls import path
from .views import (
    inventory_list, inventory_detail, inventory_expiring,
    inventory_low_stock, product_stock
)

urlpatterns = [
    path('inventory/', inventory_list, name='inventory-list'),
    path('inventory/expiring/', inventory_expiring, name='inventory-expiring'),
    path('inventory/low-stock/', inventory_low_stock, name='inventory-low-stock'),
    path('inventory/<int:pk>/', inventory_detail, name='inventory-detail'),
    path('products/<int:pk>/stock/', product_stock, name='product-stock'),
]
