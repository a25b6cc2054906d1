from django.urls import path
from .views import (
    category_list_create, category_detail,
    product_list_create, product_detail, product_upload_image,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/upload-image/', product_upload_image, name='product-upload-image'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
]
