"""
Test suite for the catalog module
Tests: catalog view filter, stock badges, image storage, category and product endpoints
"""
from decimal import Decimal
from io import StringIO
from unittest import mock

from azure.core.exceptions import ResourceExistsError
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, SimpleTestCase, override_settings
from rest_framework import status

from storefront.catalog.filters import (
    EMPTY_NO_MATCHES, EMPTY_NO_PRODUCTS, SORT_ASCENDING, SORT_DESCENDING,
    FilterState, catalog_empty_state, filter_products, normalize_price_sort, stock_badge,
)
from storefront.catalog.models import Category, Product
from storefront.catalog.storage import (
    MAX_IMAGE_SIZE, generate_image_key, upload_product_image, validate_image,
)
from storefront.core.exceptions import UploadFailure, ValidationFailure
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient


def row(id, name, price, category='', stock=20):
    return {'id': id, 'name': name, 'price': str(price), 'category': category, 'stock': stock}


class CatalogFilterTests(SimpleTestCase):
    """Test the search / category / price sort filter"""

    def setUp(self):
        self.products = [
            row(1, 'Camisa Azul', '50.00', 'Roupas'),
            row(2, 'Calça Jeans', '120.00', 'Roupas'),
            row(3, 'camisa polo', '80.00', 'Roupas'),
            row(4, 'Tênis', '200.00', 'Calçados'),
        ]

    def names(self, products):
        return [p['name'] for p in products]

    def test_no_filter_returns_everything_in_order(self):
        result = filter_products(self.products)
        self.assertEqual(result, self.products)
        self.assertIsNot(result, self.products)

    def test_search_is_case_insensitive_substring(self):
        result = filter_products(self.products, search_text='Camisa')
        self.assertEqual(self.names(result), ['Camisa Azul', 'camisa polo'])

    def test_search_with_category_and_descending_price(self):
        result = filter_products(self.products, 'camisa', 'Roupas', SORT_DESCENDING)
        self.assertEqual(self.names(result), ['camisa polo', 'Camisa Azul'])

    def test_category_is_exact_match(self):
        result = filter_products(self.products, category_name='roupas')
        self.assertEqual(result, [])

    def test_ascending_sort(self):
        result = filter_products(self.products, price_sort=SORT_ASCENDING)
        self.assertEqual([p['id'] for p in result], [1, 3, 2, 4])

    def test_sort_is_stable_for_equal_prices(self):
        products = [row(1, 'A', '10'), row(2, 'B', '10'), row(3, 'C', '5')]
        self.assertEqual([p['id'] for p in filter_products(products, price_sort='asc')], [3, 1, 2])
        self.assertEqual([p['id'] for p in filter_products(products, price_sort='desc')], [1, 2, 3])

    def test_filter_is_idempotent(self):
        once = filter_products(self.products, 'a', 'Roupas', SORT_ASCENDING)
        twice = filter_products(once, 'a', 'Roupas', SORT_ASCENDING)
        self.assertEqual(once, twice)

    def test_input_is_not_modified(self):
        snapshot = list(self.products)
        filter_products(self.products, 'camisa', price_sort=SORT_DESCENDING)
        self.assertEqual(self.products, snapshot)

    def test_unknown_price_sort(self):
        with self.assertRaises(ValidationFailure) as ctx:
            normalize_price_sort('sideways')
        self.assertEqual(ctx.exception.field, 'price_sort')

    def test_empty_states(self):
        self.assertEqual(catalog_empty_state([], []), EMPTY_NO_PRODUCTS)
        self.assertEqual(catalog_empty_state(self.products, []), EMPTY_NO_MATCHES)
        self.assertIsNone(catalog_empty_state(self.products, self.products[:1]))

    def test_filter_state_from_query_params(self):
        state = FilterState.from_query_params({'search': 'camisa', 'price_sort': 'desc'})
        self.assertEqual(state.price_sort, SORT_DESCENDING)
        self.assertEqual(self.names(state.apply(self.products)), ['camisa polo', 'Camisa Azul'])

    @override_settings(STOREFRONT={'LOW_STOCK_THRESHOLD': 10})
    def test_stock_badge(self):
        self.assertEqual(stock_badge(9), 'warning')
        self.assertEqual(stock_badge(10), 'success')
        self.assertEqual(stock_badge(0), 'warning')


@override_settings(PRODUCT_IMAGES_CONTAINER='product-images')
class ImageStorageTests(SimpleTestCase):
    """Test image validation and upload with a mocked blob client"""

    def image(self, content_type='image/png', size=100, name='photo.PNG'):
        upload = SimpleUploadedFile(name, b'x' * size, content_type=content_type)
        return upload

    def test_validate_rejects_type(self):
        with self.assertRaises(UploadFailure) as ctx:
            validate_image('image/gif', 10)
        self.assertFalse(ctx.exception.rejected_by_store)

    def test_validate_size_boundary(self):
        validate_image('image/webp', MAX_IMAGE_SIZE)
        with self.assertRaises(UploadFailure):
            validate_image('image/webp', MAX_IMAGE_SIZE + 1)

    def test_image_key_keeps_extension(self):
        first = generate_image_key('foto.JPG')
        second = generate_image_key('foto.JPG')
        self.assertTrue(first.endswith('.jpg'))
        self.assertNotEqual(first, second)

    def test_upload_returns_blob_url(self):
        service = mock.Mock()
        blob_client = service.get_blob_client.return_value
        blob_client.url = 'https://account.blob.core.windows.net/product-images/abc.png'

        url = upload_product_image(self.image(), service_client=service)

        self.assertEqual(url, blob_client.url)
        kwargs = service.get_blob_client.call_args.kwargs
        self.assertEqual(kwargs['container'], 'product-images')
        self.assertTrue(kwargs['blob'].endswith('.png'))
        blob_client.upload_blob.assert_called_once()

    def test_invalid_image_never_reaches_storage(self):
        service = mock.Mock()
        with self.assertRaises(UploadFailure):
            upload_product_image(self.image(content_type='text/plain'), service_client=service)
        service.get_blob_client.assert_not_called()

    def test_store_rejection(self):
        service = mock.Mock()
        service.get_blob_client.return_value.upload_blob.side_effect = ResourceExistsError('exists')
        with self.assertRaises(UploadFailure) as ctx:
            upload_product_image(self.image(), service_client=service)
        self.assertTrue(ctx.exception.rejected_by_store)


class CategoryAPITests(TestCase):
    """Test category endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_ordered_by_name_with_counts(self):
        TestDataFactory.create_category(name='Roupas')
        TestDataFactory.create_category(name='Acessórios')
        TestDataFactory.create_product(category='Roupas')
        TestDataFactory.create_product(category='Roupas')

        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data], ['Acessórios', 'Roupas'])
        self.assertEqual(response.data[1]['product_count'], 2)

    def test_create_category(self):
        response = self.client.post('/api/v1/categories/', {'name': '  Calçados '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Calçados')

    def test_duplicate_name_conflict(self):
        TestDataFactory.create_category(name='Roupas')
        response = self.client.post('/api/v1/categories/', {'name': 'Roupas'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'duplicate')
        self.assertEqual(Category.objects.filter(name='Roupas').count(), 1)

    def test_created_category_visible_in_next_list(self):
        self.client.get('/api/v1/categories/')
        self.client.post('/api/v1/categories/', {'name': 'Novidades'}, format='json')
        response = self.client.get('/api/v1/categories/')
        self.assertIn('Novidades', [c['name'] for c in response.data])

    def test_delete_keeps_products(self):
        category = TestDataFactory.create_category(name='Roupas')
        product = TestDataFactory.create_product(category='Roupas')
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        product.refresh_from_db()
        self.assertEqual(product.category, 'Roupas')


class ProductAPITests(TestCase):
    """Test product endpoints and the filtered catalog view"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_empty_catalog(self):
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results'], [])
        self.assertEqual(response.data['empty_state'], EMPTY_NO_PRODUCTS)

    def test_filtered_list(self):
        TestDataFactory.create_product(name='Camisa Azul', price='50.00', category='Roupas')
        TestDataFactory.create_product(name='Calça Jeans', price='120.00', category='Roupas')
        TestDataFactory.create_product(name='camisa polo', price='80.00', category='Roupas')

        response = self.client.get('/api/v1/products/', {
            'search': 'camisa', 'category': 'Roupas', 'price_sort': 'descending',
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data['results']], ['camisa polo', 'Camisa Azul'])
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['total_count'], 3)
        self.assertIsNone(response.data['empty_state'])

    def test_no_matches(self):
        TestDataFactory.create_product(name='Camisa Azul')
        response = self.client.get('/api/v1/products/', {'search': 'sapato'})
        self.assertEqual(response.data['empty_state'], EMPTY_NO_MATCHES)

    def test_bad_price_sort(self):
        response = self.client.get('/api/v1/products/', {'price_sort': 'up'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'price_sort')

    def test_create_product(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Camisa Azul',
            'price': '49.90',
            'stock': 5,
            'category': 'Roupas',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['stock_badge'], 'warning')
        self.assertEqual(Product.objects.get().price, Decimal('49.90'))

    def test_create_product_rejects_negative_values(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Camisa', 'price': '-1.00', 'stock': -2,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data)
        self.assertIn('stock', response.data)

    def test_new_product_visible_after_cached_read(self):
        self.client.get('/api/v1/products/')
        TestDataFactory.create_product(name='Boné')
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.data['count'], 1)

    def test_update_and_delete(self):
        product = TestDataFactory.create_product(name='Boné', stock=3)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'stock': 30}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock_badge'], 'success')

        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.exists())

    def test_upload_image_without_file(self):
        response = self.client.post('/api/v1/products/upload-image/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'image')

    def test_upload_image(self):
        image = SimpleUploadedFile('foto.png', b'png-bytes', content_type='image/png')
        with mock.patch('storefront.catalog.views.upload_product_image', return_value='https://cdn/x.png') as upload:
            response = self.client.post('/api/v1/products/upload-image/', {'image': image}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['url'], 'https://cdn/x.png')
        upload.assert_called_once()

    def test_upload_image_rejected_type(self):
        image = SimpleUploadedFile('foto.gif', b'gif-bytes', content_type='image/gif')
        response = self.client.post('/api/v1/products/upload-image/', {'image': image}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'upload_failed')


class SeedCatalogCommandTests(TestCase):
    """Test the seed_catalog management command"""

    def test_seed_is_repeatable(self):
        call_command('seed_catalog', '--with-products', stdout=StringIO())
        categories = Category.objects.count()
        products = Product.objects.count()
        call_command('seed_catalog', '--with-products', stdout=StringIO())
        self.assertGreater(categories, 0)
        self.assertEqual(Category.objects.count(), categories)
        self.assertEqual(Product.objects.count(), products)
