"""
Transfer service - moves image files between clients and storage backends.
"""

import logging
from collections.abc import AsyncIterable, Mapping
from typing import Any

from vmregistry.config import get_settings
from vmregistry.core.exceptions import (
    BackendUnavailableException,
    ConflictException,
    RegistryException,
)
from vmregistry.models.image import Image, ImageStatus, StoreName
from vmregistry.services.registry import ImageRegistry
from vmregistry.storage.base import ObjectStat
from vmregistry.storage.resolver import resolve

logger = logging.getLogger(__name__)


async def upload_image(
    registry: ImageRegistry,
    image: Image,
    chunks: AsyncIterable[bytes],
    store_configs: Mapping[str, Mapping[str, Any]],
) -> Image:
    """
    Stream an image file into its store and activate the image.

    The image goes queued -> saving -> active. If the store is unreachable
    the image returns to queued so the upload can be retried; any other
    storage error kills it.

    Args:
        registry: Registry bound to the request session
        image: A queued image
        chunks: Incoming image bytes
        store_configs: Backend settings keyed by backend name

    Returns:
        The activated image

    Raises:
        ConflictException: If the image is not queued or the file already exists
        UnsupportedStoreException: If the target store is not configured
        BackendUnavailableException: If the store could not be reached
    """
    if image.status != ImageStatus.QUEUED:
        raise ConflictException(
            message=f"Image {image.id} is {image.status.value}, only queued images accept an image file",
            details={"id": image.id, "status": image.status.value},
        )

    store = image.store.value if image.store else get_settings().DEFAULT_STORE
    backend = resolve(store, store_configs)
    format = image.format.value if image.format else "none"

    await registry.set_status(image.id, ImageStatus.SAVING)
    await registry.commit()

    try:
        stored = await backend.store(f"{image.id}.{format}", chunks)
    except BackendUnavailableException:
        logger.warning("Store '%s' unavailable, image %d back to queued", store, image.id)
        await registry.set_status(image.id, ImageStatus.QUEUED)
        await registry.commit()
        raise
    except RegistryException as e:
        logger.error("Upload of image %d failed: %s", image.id, e.message)
        await registry.set_status(image.id, ImageStatus.KILLED)
        await registry.commit()
        raise

    logger.info("Uploaded image %d to %s (%d bytes)", image.id, stored.location, stored.size)
    return await registry.mark_uploaded(image.id, stored, store=StoreName(backend.name))


async def describe_location(
    location: str,
    store_configs: Mapping[str, Mapping[str, Any]],
) -> ObjectStat:
    """
    Inspect an existing image file without transferring it.

    Returns:
        Its size and checksum, either may be unknown

    Raises:
        UnsupportedStoreException: If the locator names no configured store
        NotFoundException: If there is no file at ``location``
    """
    return await resolve(location, store_configs).stat()
