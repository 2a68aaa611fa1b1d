from django.contrib import admin
from .models import Category, Unit, UsageRoute, Product, ProductUnit


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent', 'created_at']
    list_filter = ['parent']
    search_fields = ['name', 'description']
    ordering = ['name']


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name']
    ordering = ['name']


@admin.register(UsageRoute)
class UsageRouteAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name']
    ordering = ['name']


class ProductUnitInline(admin.TabularInline):
    model = ProductUnit
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'category', 'base_unit', 'usage_route', 'compartment', 'updated_at']
    list_filter = ['category', 'usage_route']
    search_fields = ['code', 'name', 'description']
    ordering = ['name']
    raw_id_fields = ['compartment']
    inlines = [ProductUnitInline]
