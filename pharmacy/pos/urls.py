from django.urls import path
from .views import pos_products, invoice_next_code, invoice_list_create, invoice_detail, invoice_cancel

urlpatterns = [
    path('pos/products/', pos_products, name='pos-products'),
    path('invoices/', invoice_list_create, name='invoice-list-create'),
    path('invoices/next-code/', invoice_next_code, name='invoice-next-code'),
    path('invoices/<int:pk>/', invoice_detail, name='invoice-detail'),
    path('invoices/<int:pk>/cancel/', invoice_cancel, name='invoice-cancel'),
]
