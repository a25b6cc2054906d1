from rest_framework import serializers
from decimal import Decimal
from .models import Category, Product
from .filters import stock_badge


class CategorySerializer(serializers.ModelSerializer):
    # Declared explicitly so a duplicate name reaches the database and
    # comes back as a 409 instead of a field error
    name = serializers.CharField(max_length=100, trim_whitespace=True)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, trim_whitespace=True)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'created_at']

    def get_product_count(self, obj):
        counts = self.context.get('product_counts')
        if counts is not None:
            return counts.get(obj.name, 0)
        return Product.objects.filter(category=obj.name).count()


class ProductSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=200, trim_whitespace=True)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True, trim_whitespace=True)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'))
    stock = serializers.IntegerField(min_value=0)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, trim_whitespace=True)
    size = serializers.CharField(max_length=50, required=False, allow_blank=True, trim_whitespace=True)
    color = serializers.CharField(max_length=50, required=False, allow_blank=True, trim_whitespace=True)
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True)
    stock_badge = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'description', 'price', 'stock', 'stock_badge', 'category',
            'size', 'color', 'image_url', 'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def get_stock_badge(self, obj):
        return stock_badge(obj.stock)
