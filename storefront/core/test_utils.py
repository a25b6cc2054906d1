"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from storefront.catalog.models import Category, Product
from storefront.orders.models import Order, OrderItem
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not email:
            email = f'testuser_{TestDataFactory.random_string(6).lower()}@test.com'
        return User.objects.create_user(
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_category(name=None, description=''):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, description=description)

    @staticmethod
    def create_product(name=None, price='10.00', stock=20, category='', size='', color=''):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        return Product.objects.create(
            name=name,
            price=Decimal(str(price)),
            stock=stock,
            category=category,
            size=size,
            color=color,
        )

    @staticmethod
    def create_order(customer_name='Test Customer', customer_email='customer@test.com',
                     status='pending', total='0.00'):
        """Create a test order header"""
        return Order.objects.create(
            customer_name=customer_name,
            customer_email=customer_email,
            status=status,
            total=Decimal(str(total)),
        )

    @staticmethod
    def create_order_item(order, product=None, quantity=1, unit_price=None):
        """Create a test order line"""
        if unit_price is None:
            unit_price = product.price if product else Decimal('0.00')
        return OrderItem.objects.create(
            order=order,
            product=product,
            quantity=quantity,
            unit_price=Decimal(str(unit_price)),
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
