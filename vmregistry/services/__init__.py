"""
Business logic services for the image registry.
Services handle core operations separate from API endpoints.
"""

from vmregistry.services.counters import CounterStore
from vmregistry.services.registry import ImageRegistry
from vmregistry.services.transfer import describe_location, upload_image

__all__ = [
    "CounterStore",
    "ImageRegistry",
    "describe_location",
    "upload_image",
]
