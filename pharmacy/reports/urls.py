from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard, name='report-dashboard'),
    path('reports/sales/', views.sales_report, name='report-sales'),
    path('reports/inventory/', views.inventory_report, name='report-inventory'),
    path('reports/purchases/', views.purchases_report, name='report-purchases'),
    path('reports/finance/', views.finance_report, name='report-finance'),
]
