from django.urls import path
from .views import (
    cabinet_list_create, cabinet_detail,
    row_list_create, row_detail,
    compartment_list_create, compartment_detail, compartment_products
)

urlpatterns = [
    path('cabinets/', cabinet_list_create, name='cabinet-list-create'),
    path('cabinets/<int:pk>/', cabinet_detail, name='cabinet-detail'),
    path('cabinets/<int:cabinet_id>/rows/', row_list_create, name='row-list-create'),
    path('rows/<int:pk>/', row_detail, name='row-detail'),
    path('rows/<int:row_id>/compartments/', compartment_list_create, name='compartment-list-create'),
    path('compartments/<int:pk>/', compartment_detail, name='compartment-detail'),
    path('compartments/<int:pk>/products/', compartment_products, name='compartment-products'),
]
