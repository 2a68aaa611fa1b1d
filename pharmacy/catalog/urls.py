from django.urls import path
from .views import (
    category_list_create, category_tree, category_detail,
    unit_list_create, unit_detail,
    usage_route_list_create, usage_route_detail,
    product_list_create, product_detail, product_lookup,
    product_unit_list_create, product_unit_detail, product_unit_set_base
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/tree/', category_tree, name='category-tree'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Unit endpoints
    path('units/', unit_list_create, name='unit-list-create'),
    path('units/<int:pk>/', unit_detail, name='unit-detail'),

    # Usage route endpoints
    path('usage-routes/', usage_route_list_create, name='usage-route-list-create'),
    path('usage-routes/<int:pk>/', usage_route_detail, name='usage-route-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/lookup/', product_lookup, name='product-lookup'),
    path('products/<int:pk>/', product_detail, name='product-detail'),

    # Product unit endpoints
    path('products/<int:pk>/units/', product_unit_list_create, name='product-unit-list-create'),
    path('products/<int:pk>/units/<int:unit_id>/', product_unit_detail, name='product-unit-detail'),
    path('products/<int:pk>/units/<int:unit_id>/set-base/', product_unit_set_base, name='product-unit-set-base'),
]
