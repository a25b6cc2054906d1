"""
Product image storage on Azure Blob Storage.

Images are checked for type and size before anything goes over the network,
stored under a random key and served from the container's public URL.
"""
import logging
import os
import uuid

from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient, ContentSettings
from django.conf import settings

from storefront.core.exceptions import UploadFailure

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'image/webp')
MAX_IMAGE_SIZE = 5242880  # 5 MB


def validate_image(content_type, size):
    """Reject wrong types and oversized files before any upload"""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise UploadFailure('Invalid format. Use JPG, PNG or WEBP')
    if size > MAX_IMAGE_SIZE:
        raise UploadFailure('Image too large. Maximum 5MB')


def generate_image_key(filename):
    """Random blob name that keeps the original extension"""
    _, ext = os.path.splitext(filename or '')
    return f"{uuid.uuid4().hex}{ext.lower()}"


def get_blob_service_client():
    connection_string = settings.AZURE_STORAGE_CONNECTION_STRING
    if not connection_string:
        raise UploadFailure('Image storage is not configured', rejected_by_store=True)
    return BlobServiceClient.from_connection_string(connection_string)


def upload_product_image(image_file, service_client=None):
    """
    Upload an uploaded file to the product images container.

    Args:
        image_file: Django UploadedFile (needs name, size, content_type)
        service_client: Optional BlobServiceClient, built from settings if omitted

    Returns:
        Public URL of the stored blob
    """
    content_type = getattr(image_file, 'content_type', '') or ''
    validate_image(content_type, image_file.size)

    key = generate_image_key(image_file.name)
    client = service_client or get_blob_service_client()
    blob_client = client.get_blob_client(container=settings.PRODUCT_IMAGES_CONTAINER, blob=key)
    try:
        blob_client.upload_blob(
            image_file.read(),
            overwrite=False,
            content_settings=ContentSettings(content_type=content_type),
        )
    except AzureError as e:
        logger.error(f"Image upload failed for {key}: {str(e)}")
        raise UploadFailure('Error uploading image', rejected_by_store=True) from e

    logger.info(f"Uploaded product image {key} ({image_file.size} bytes)")
    return blob_client.url
