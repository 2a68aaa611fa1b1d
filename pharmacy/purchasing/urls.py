from django.urls import path
from .views import (
    purchase_order_next_code, purchase_order_list_create, purchase_order_detail,
    purchase_order_item_create, purchase_order_item_delete, purchase_order_payment
)

urlpatterns = [
    path('purchase-orders/', purchase_order_list_create, name='purchase-order-list-create'),
    path('purchase-orders/next-code/', purchase_order_next_code, name='purchase-order-next-code'),
    path('purchase-orders/<int:pk>/', purchase_order_detail, name='purchase-order-detail'),
    path('purchase-orders/<int:pk>/items/', purchase_order_item_create, name='purchase-order-item-create'),
    path('purchase-orders/<int:pk>/items/<int:item_id>/', purchase_order_item_delete, name='purchase-order-item-delete'),
    path('purchase-orders/<int:pk>/payment/', purchase_order_payment, name='purchase-order-payment'),
]
