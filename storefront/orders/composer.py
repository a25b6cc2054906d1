"""
Order composer: an editable order draft and its validation.

The draft is plain Python state (no database access) so it can back both the
orders API and a client-side editor. Catalog arguments are any iterable of
products, either model instances or serialized dicts, carrying ``id`` and
``price``.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from storefront.core.exceptions import ValidationFailure
from .status import ORDER_STATUSES, PENDING

CUSTOMER_NAME_MAX_LENGTH = 200
CUSTOMER_EMAIL_MAX_LENGTH = 255
CUSTOMER_PHONE_MAX_LENGTH = 20
ORDER_ITEM_MAX_QUANTITY = 10000
# Order.total and OrderItem.unit_price are max_digits=10, decimal_places=2
ORDER_TOTAL_MAX = Decimal('99999999.99')


class LineItemIndexError(IndexError):
    """Line item position outside the draft's item list"""

    def __init__(self, index, size):
        self.index = index
        self.size = size
        super().__init__(f"Line item {index} out of range (draft has {size} items)")


class SubmissionInProgress(Exception):
    """A submit is already pending for this draft"""


def _field(product, name, default=None):
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


def catalog_index(catalog):
    """Map str(product id) -> product. Ids are compared as strings."""
    if isinstance(catalog, dict):
        return catalog
    return {str(_field(p, 'id')): p for p in catalog}


def price_of(product_id, catalog):
    """Current catalog price of a product, zero when it is no longer listed"""
    product = catalog_index(catalog).get(str(product_id))
    if product is None:
        return Decimal('0')
    try:
        return Decimal(str(_field(product, 'price', 0)))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal('0')


def compute_total(items, catalog):
    """Sum of price x quantity over the line items"""
    index = catalog_index(catalog)
    total = Decimal('0')
    for item in items:
        total += price_of(item.product_id, index) * item.quantity
    return total


def coerce_quantity(value):
    """
    Parse user input into a positive whole quantity.

    Raises ValidationFailure for non-numeric, fractional, non-positive or
    oversized input.
    """
    if isinstance(value, bool):
        raise ValidationFailure('quantity', 'Quantity must be a whole number')
    if isinstance(value, str):
        value = value.strip()
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailure('quantity', 'Quantity must be a whole number')
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationFailure('quantity', 'Quantity must be a whole number')
    if number <= 0:
        raise ValidationFailure('quantity', 'Quantity must be at least 1')
    if number > ORDER_ITEM_MAX_QUANTITY:
        raise ValidationFailure('quantity', f'Quantity must be at most {ORDER_ITEM_MAX_QUANTITY}')
    return int(number)


def check_total(total):
    """Raise ValidationFailure when an order total does not fit the total column"""
    if total > ORDER_TOTAL_MAX:
        raise ValidationFailure('items', f'Order total must not exceed {ORDER_TOTAL_MAX}')
    return total


def _parse_quantity(value):
    # Lenient parse for payloads: anything that is not a whole number becomes
    # None and is reported by OrderDraft.validate()
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


@dataclass
class DraftLineItem:
    product_id: object
    quantity: int = 1


class OrderDraft:
    """
    In-progress order: customer fields, a status and line items.

    Typical use::

        draft = OrderDraft(customer_name='Ana', customer_email='ana@x.com')
        draft.add_line_item(catalog)
        draft.set_line_item_quantity(0, '3')
        order = draft.submit(catalog, DjangoOrderStore())
    """

    def __init__(self, customer_name='', customer_email='', customer_phone='',
                 status=PENDING, items=None):
        self.customer_name = customer_name
        self.customer_email = customer_email
        self.customer_phone = customer_phone
        self.status = status
        self.items = list(items or [])
        self._submitting = False

    def __repr__(self):
        return f"<OrderDraft {self.customer_name!r} items={len(self.items)}>"

    @property
    def is_submitting(self):
        return self._submitting

    @classmethod
    def from_payload(cls, data):
        """Build a draft from an API payload (customer fields, status, items)"""
        if not isinstance(data, Mapping):
            raise ValidationFailure('body', 'Order payload must be an object')
        raw_items = data.get('items') or []
        if not isinstance(raw_items, (list, tuple)):
            raise ValidationFailure('items', 'Items must be a list')

        items = []
        for raw in raw_items:
            if not isinstance(raw, Mapping):
                raise ValidationFailure('items', 'Each item needs a product_id and a quantity')
            items.append(DraftLineItem(
                product_id=raw.get('product_id'),
                quantity=_parse_quantity(raw.get('quantity', 1)),
            ))

        return cls(
            customer_name=str(data.get('customer_name') or ''),
            customer_email=str(data.get('customer_email') or ''),
            customer_phone=str(data.get('customer_phone') or ''),
            status=data.get('status') or PENDING,
            items=items,
        )

    # Line item editing
    def _item_at(self, index):
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.items):
            raise LineItemIndexError(index, len(self.items))
        return self.items[index]

    def add_line_item(self, catalog):
        """Append a line for the first catalog product, quantity 1. No-op on an empty catalog."""
        for product in catalog:
            item = DraftLineItem(product_id=_field(product, 'id'), quantity=1)
            self.items.append(item)
            return item
        return None

    def remove_line_item(self, index):
        self._item_at(index)
        return self.items.pop(index)

    def set_line_item_product(self, index, product_id):
        item = self._item_at(index)
        item.product_id = product_id
        return item

    def set_line_item_quantity(self, index, quantity):
        """Set a quantity; invalid input raises and leaves the item unchanged"""
        item = self._item_at(index)
        item.quantity = coerce_quantity(quantity)
        return item

    def compute_total(self, catalog):
        return compute_total(self.items, catalog)

    def validate(self):
        """First validation failure in field order, or None when the draft can be submitted"""
        name = (self.customer_name or '').strip()
        if not name:
            return ValidationFailure('customer_name', 'Customer name is required')
        if len(name) > CUSTOMER_NAME_MAX_LENGTH:
            return ValidationFailure('customer_name', f'Customer name must be at most {CUSTOMER_NAME_MAX_LENGTH} characters')

        email = (self.customer_email or '').strip()
        if len(email) > CUSTOMER_EMAIL_MAX_LENGTH:
            return ValidationFailure('customer_email', f'Email must be at most {CUSTOMER_EMAIL_MAX_LENGTH} characters')
        try:
            validate_email(email)
        except ValidationError:
            return ValidationFailure('customer_email', 'Invalid email')

        phone = (self.customer_phone or '').strip()
        if len(phone) > CUSTOMER_PHONE_MAX_LENGTH:
            return ValidationFailure('customer_phone', f'Phone must be at most {CUSTOMER_PHONE_MAX_LENGTH} characters')

        if self.status not in ORDER_STATUSES:
            return ValidationFailure('status', f"Unknown status '{self.status}'")

        if not self.items:
            return ValidationFailure('items', 'Add at least one product')
        for position, item in enumerate(self.items):
            quantity = item.quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                return ValidationFailure(f'items[{position}].quantity', 'Quantity must be at least 1')
            if quantity > ORDER_ITEM_MAX_QUANTITY:
                return ValidationFailure(
                    f'items[{position}].quantity', f'Quantity must be at most {ORDER_ITEM_MAX_QUANTITY}',
                )
        for position, item in enumerate(self.items):
            if item.product_id in (None, ''):
                return ValidationFailure(f'items[{position}].product_id', 'Select a product')
        return None

    def to_header(self, total):
        """Order header record with trimmed customer fields"""
        return {
            'customer_name': self.customer_name.strip(),
            'customer_email': self.customer_email.strip(),
            'customer_phone': (self.customer_phone or '').strip(),
            'status': self.status,
            'total': total,
        }

    def submit(self, catalog, store, on_items_failure=None):
        """
        Validate and persist the draft through ``store``.

        Raises ValidationFailure without touching the store, SubmissionInProgress
        while a previous submit is still running, and RemoteWriteFailure when
        the store rejects a write.
        """
        from .persistence import persist_order

        if self._submitting:
            raise SubmissionInProgress('Order submission already in progress')
        failure = self.validate()
        if failure is not None:
            raise failure

        self._submitting = True
        try:
            return persist_order(self, catalog, store, on_items_failure=on_items_failure)
        finally:
            self._submitting = False
