"""
Error taxonomy shared by the catalog, orders and client code.

Views catch these at the point of origin and turn them into a response via
``error_response``; nothing here is meant to escape as an unhandled fault.
"""
from rest_framework import status
from rest_framework.response import Response


class StorefrontError(Exception):
    """Base class for all storefront errors"""
    code = 'error'
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message):
        self.message = message
        super().__init__(message)

    def as_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationFailure(StorefrontError):
    """User-correctable input defect. Carries the offending field."""
    code = 'invalid'

    def __init__(self, field, message):
        self.field = field
        super().__init__(message)

    def __eq__(self, other):
        return (
            isinstance(other, ValidationFailure)
            and other.field == self.field
            and other.message == self.message
        )

    def __hash__(self):
        return hash((self.field, self.message))

    def __repr__(self):
        return f"ValidationFailure(field={self.field!r}, message={self.message!r})"

    def as_dict(self):
        data = super().as_dict()
        data['field'] = self.field
        return data


class RemoteWriteFailure(StorefrontError):
    """The store rejected an insert, update or delete"""
    code = 'write_failed'
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message, phase=None, order_id=None, compensated=False):
        self.phase = phase
        self.order_id = order_id
        self.compensated = compensated
        super().__init__(message)

    def as_dict(self):
        data = super().as_dict()
        if self.phase:
            data['phase'] = self.phase
        if self.order_id is not None:
            data['order_id'] = self.order_id
            data['compensated'] = self.compensated
        return data


class RemoteReadFailure(StorefrontError):
    """A catalog or order fetch failed"""
    code = 'read_failed'
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class UploadFailure(StorefrontError):
    """Image rejected locally (type or size) or by the object store"""
    code = 'upload_failed'

    def __init__(self, message, rejected_by_store=False):
        self.rejected_by_store = rejected_by_store
        super().__init__(message)
        if rejected_by_store:
            self.http_status = status.HTTP_502_BAD_GATEWAY


class AuthFailure(StorefrontError):
    """Classified authentication error"""
    BAD_CREDENTIALS = 'bad_credentials'
    DUPLICATE_ACCOUNT = 'duplicate_account'
    INVALID = 'invalid'
    UNAVAILABLE = 'unavailable'

    def __init__(self, kind, message):
        self.kind = kind
        self.code = kind
        super().__init__(message)
        if kind == self.BAD_CREDENTIALS:
            self.http_status = status.HTTP_401_UNAUTHORIZED
        elif kind == self.DUPLICATE_ACCOUNT:
            self.http_status = status.HTTP_409_CONFLICT
        elif kind == self.UNAVAILABLE:
            self.http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class DuplicateName(StorefrontError):
    """Unique-name constraint hit on write"""
    code = 'duplicate'
    http_status = status.HTTP_409_CONFLICT


def error_response(exc, **extra):
    """Render a StorefrontError as a DRF response"""
    data = exc.as_dict()
    data.update(extra)
    return Response(data, status=exc.http_status)
