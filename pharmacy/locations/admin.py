from django.contrib import admin
from .models import Cabinet, Row, Compartment


class RowInline(admin.TabularInline):
    model = Row
    extra = 0


class CompartmentInline(admin.TabularInline):
    model = Compartment
    extra = 0


@admin.register(Cabinet)
class CabinetAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name', 'description']
    ordering = ['name']
    inlines = [RowInline]


@admin.register(Row)
class RowAdmin(admin.ModelAdmin):
    list_display = ['name', 'cabinet', 'created_at']
    list_filter = ['cabinet']
    search_fields = ['name', 'cabinet__name']
    ordering = ['cabinet__name', 'name']
    inlines = [CompartmentInline]


@admin.register(Compartment)
class CompartmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'row', 'created_at']
    list_filter = ['row__cabinet']
    search_fields = ['name', 'row__name', 'row__cabinet__name']
    ordering = ['row__cabinet__name', 'row__name', 'name']
