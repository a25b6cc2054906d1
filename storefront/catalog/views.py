import logging

from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from storefront.core.exceptions import (
    DuplicateName, RemoteReadFailure, UploadFailure, ValidationFailure, error_response,
)
from .filters import FilterState, catalog_empty_state
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer
from .storage import upload_product_image
from .utils import get_category_rows, get_product_rows

logger = logging.getLogger(__name__)


def _save_category(serializer):
    """Save a category, turning the unique-name violation into DuplicateName"""
    try:
        with transaction.atomic():
            serializer.save()
    except IntegrityError:
        raise DuplicateName('A category with this name already exists')


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List categories (by name, with product counts) or create one"""
    if request.method == 'GET':
        try:
            return Response(get_category_rows())
        except RemoteReadFailure as e:
            return error_response(e, results=[])

    serializer = CategorySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        _save_category(serializer)
    except DuplicateName as e:
        return error_response(e)
    logger.info(f"Created category {serializer.instance.name}")
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            _save_category(serializer)
        except DuplicateName as e:
            return error_response(e)
        return Response(serializer.data)
    else:  # DELETE
        # Products keep the category name; the reference is soft
        category.delete()
        logger.info(f"Deleted category {category.name}")
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """
    GET: catalog view filtered by ``search``, ``category`` and ``price_sort``.
    POST: create a product.
    """
    if request.method == 'GET':
        try:
            filter_state = FilterState.from_query_params(request.query_params)
        except ValidationFailure as e:
            return error_response(e)
        try:
            all_products = get_product_rows()
        except RemoteReadFailure as e:
            return error_response(e, results=[], count=0, total_count=0)

        products = filter_state.apply(all_products)
        return Response({
            'results': products,
            'count': len(products),
            'total_count': len(all_products),
            'empty_state': catalog_empty_state(all_products, products),
        })

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    logger.info(f"Created product {serializer.instance.pk} ({serializer.instance.name})")
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save()
        return Response(serializer.data)
    else:  # DELETE
        # Order items keep their captured price; their product link is nulled
        product.delete()
        logger.info(f"Deleted product {pk}")
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def product_upload_image(request):
    """Upload a product image and return its public URL"""
    image = request.FILES.get('image')
    if image is None:
        return error_response(ValidationFailure('image', 'No image selected'))
    try:
        url = upload_product_image(image)
    except UploadFailure as e:
        return error_response(e)
    return Response({'url': url}, status=status.HTTP_201_CREATED)
