"""
Django Admin configuration for document collections.
"""
from django.contrib import admin
from .models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ['id', 'collection', 'key', 'item_code', 'created_at', 'updated_at']
    list_filter = ['collection', 'created_at']
    search_fields = ['key', 'collection']
    ordering = ['collection', '-created_at']
    readonly_fields = ['created_at', 'updated_at']

    def item_code(self, obj):
        return (obj.data or {}).get('itemCode', '')
    item_code.short_description = 'Item Code'
