"""
Serializers for inventory endpoints.
Provides request validation for the document-backed catalog and sales APIs.
"""
from rest_framework import serializers

from .records import Thresholds

VALID_DEPARTMENTS = ['General', 'Purchase', 'Sales', 'Storage', 'Electronics', 'Clothing']


class ThresholdQuerySerializer(serializers.Serializer):
    """
    Optional per-request stock thresholds (``?low=5&medium=10``).

    Missing values fall back to the defaults passed in context.
    """
    low = serializers.IntegerField(required=False, min_value=0)
    medium = serializers.IntegerField(required=False, min_value=0)

    def validate(self, attrs):
        defaults = self.context.get('defaults') or Thresholds()
        low = attrs.get('low', defaults.low)
        medium = attrs.get('medium', defaults.medium)
        if low > medium:
            raise serializers.ValidationError("Low threshold cannot exceed medium threshold")
        attrs['thresholds'] = Thresholds(low=low, medium=medium)
        return attrs


class LowStockQuerySerializer(serializers.Serializer):
    threshold = serializers.IntegerField(required=False, min_value=0, default=5)


class ProductInputSerializer(serializers.Serializer):
    """One product in a bulk create payload."""
    itemCode = serializers.CharField(max_length=64)
    itemName = serializers.CharField(max_length=255)
    unitPrice = serializers.FloatField()
    gst = serializers.FloatField(required=False, default=0, min_value=0)
    quantity = serializers.IntegerField(required=False, default=0, min_value=0)
    department = serializers.ChoiceField(choices=VALID_DEPARTMENTS, required=False, default='General')
    hsn = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_unitPrice(self, value):
        if value <= 0:
            raise serializers.ValidationError("unitPrice must be a positive number")
        return value


class BulkProductsSerializer(serializers.Serializer):
    """
    Validate bulk product creation.

    Expected format:
    {
        "products": [
            {"itemCode": "P1", "itemName": "Fridge", "unitPrice": 15000, "quantity": 10}
        ]
    }
    """
    products = ProductInputSerializer(many=True, allow_empty=False)


class ProductUpdateSerializer(serializers.Serializer):
    itemCode = serializers.CharField(max_length=64, required=False)
    itemName = serializers.CharField(max_length=255, required=False)
    unitPrice = serializers.FloatField(required=False, min_value=0)
    gst = serializers.FloatField(required=False, min_value=0)
    quantity = serializers.IntegerField(required=False, min_value=0)
    department = serializers.ChoiceField(choices=VALID_DEPARTMENTS, required=False)
    hsn = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No fields to update")
        return attrs


class RestockSerializer(serializers.Serializer):
    itemCode = serializers.CharField(max_length=64)
    itemName = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    quantity = serializers.IntegerField(min_value=1)
    unitPrice = serializers.FloatField(required=False, min_value=0)
    gst = serializers.FloatField(required=False, min_value=0)


class SoldProductSerializer(serializers.Serializer):
    """Manual sale entry; unknown extra fields are dropped."""
    itemCode = serializers.CharField(max_length=64)
    itemName = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    unitPrice = serializers.FloatField(required=False, min_value=0, default=0)
    gst = serializers.FloatField(required=False, min_value=0, default=0)
    hsn = serializers.CharField(required=False, allow_blank=True)
    source = serializers.CharField(required=False, allow_blank=True, max_length=32)
    invoiceNumber = serializers.CharField(required=False, allow_blank=True, max_length=64)
    customerName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    soldDate = serializers.DateTimeField(required=False)

    def to_internal_value(self, data):
        attrs = super().to_internal_value(data)
        if 'soldDate' in attrs:
            attrs['soldDate'] = attrs['soldDate'].isoformat()
        return attrs
