"""
Image registry service - Business logic for image metadata.
Handles id allocation, CRUD operations, listings and authorization.
"""

import enum
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vmregistry.auth.client import Operation
from vmregistry.config import get_settings
from vmregistry.core.exceptions import (
    ImageNotFoundException,
    UnauthorizedException,
    UnsupportedStoreException,
    ValidationException,
)
from vmregistry.models.image import (
    AccessLevel,
    Image,
    ImageFormat,
    ImageStatus,
    ImageType,
    StoreName,
)
from vmregistry.schemas.image import BRIEF, DETAIL_EXC, ImageCreate, ImageFilters, ImageUpdate
from vmregistry.services.counters import CounterStore
from vmregistry.storage.base import ObjectStat, StoredObject
from vmregistry.storage.resolver import BACKENDS, backend_name

logger = logging.getLogger(__name__)

IMAGES = "images"

# Attributes that may not be cleared by a patch
REQUIRED = ("name", "architecture", "access")


class Authorizer(Protocol):
    async def authorize(self, token: str | None, operation: Operation, image_owner: str | None) -> bool: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def store_for_location(location: str) -> StoreName:
    """Store name implied by a locator's scheme (https counts as http)."""
    cls = BACKENDS.get(backend_name(location))
    if cls is None:
        raise UnsupportedStoreException(backend_name(location))
    return StoreName(cls.name)


class ImageRegistry:
    """
    Service class for image metadata operations.

    When no ``authorizer`` is given the registry trusts its caller and
    performs no authorization checks.
    """

    def __init__(self, db: AsyncSession, authorizer: Authorizer | None = None):
        self.db = db
        self.authorizer = authorizer
        self.counters = CounterStore(db)
        self.public_url = get_settings().PUBLIC_URL.rstrip("/")

    async def commit(self) -> None:
        await self.db.commit()

    # Counters

    async def configure_counters(self, entity: str = IMAGES) -> None:
        await self.counters.configure(entity)

    async def allocate_id(self, entity: str = IMAGES) -> int:
        return await self.counters.allocate(entity)

    # Helpers

    async def _load(self, image_id: int) -> Image:
        image = await self.db.get(Image, image_id, populate_existing=True)
        if image is None:
            raise ImageNotFoundException(image_id)
        return image

    async def _authorize(self, token: str | None, operation: Operation, image: Image) -> None:
        if self.authorizer is None:
            return
        if not await self.authorizer.authorize(token, operation, image.owner):
            raise UnauthorizedException(
                message=f"Not authorized to {operation.value} image {image.id}",
                details={"id": image.id, "operation": operation.value},
            )

    async def _check_boot_reference(
        self,
        field: str,
        image_id: int,
        image_type: ImageType,
        image_format: ImageFormat,
    ) -> None:
        """A kernel/ramdisk reference must point at an image of that kind."""
        target = await self.db.get(Image, image_id)
        if target is None:
            raise ValidationException(
                message=f"No {field} image found with id '{image_id}'",
                details={"field": field, "id": image_id},
            )
        if target.type != image_type and target.format != image_format:
            raise ValidationException(
                message=f"Image {image_id} is not a {field} image",
                details={"field": field, "id": image_id},
            )

    async def _check_references(self, fields: dict[str, Any]) -> None:
        if fields.get("kernel") is not None:
            await self._check_boot_reference("kernel", fields["kernel"], ImageType.KERNEL, ImageFormat.AKI)
        if fields.get("ramdisk") is not None:
            await self._check_boot_reference("ramdisk", fields["ramdisk"], ImageType.RAMDISK, ImageFormat.ARI)

    # Operations

    async def create(self, record: dict[str, Any], owner: str | None = None) -> Image:
        """
        Register a new image.

        Args:
            record: Client supplied metadata
            owner: Authenticated principal, the only source of ownership

        Returns:
            The persisted image

        Raises:
            ValidationException: If the metadata is invalid
            UnsupportedStoreException: If ``location`` names an unknown store
        """
        try:
            data = ImageCreate.model_validate(record)
        except ValidationError as e:
            raise ValidationException.from_pydantic(e)

        fields = data.known_fields()
        await self._check_references(fields)

        fields["access"] = data.access or AccessLevel.PUBLIC
        fields["owner"] = owner
        if data.location and data.store is None:
            fields["store"] = store_for_location(data.location)

        image_id = await self.allocate_id()
        image = Image(
            **fields,
            id=image_id,
            uri=f"{self.public_url}/images/{image_id}",
            status=ImageStatus.ACTIVE if data.location else ImageStatus.QUEUED,
            properties=data.extra_properties(),
            created_at=_now(),
            access_count=0,
        )
        self.db.add(image)
        await self.db.flush()

        logger.info("Registered image %d (%s)", image.id, image.name)
        return image

    async def get(self, image_id: int, token: str | None = None) -> Image:
        """
        Get an image by id, counting the access.

        Raises:
            ImageNotFoundException: If no such image exists
            UnauthorizedException: If the image is private and access is denied
        """
        image = await self._load(image_id)
        if image.access == AccessLevel.PRIVATE:
            await self._authorize(token, Operation.READ, image)

        await self.db.execute(
            update(Image)
            .where(Image.id == image_id)
            .values(access_count=Image.access_count + 1, accessed_at=_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(image)
        return image

    async def list(
        self,
        filters: ImageFilters | dict[str, Any] | None = None,
        brief: bool = False,
        principal: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List the images visible to ``principal``.

        Public images are always visible, private ones only to their owner.
        An empty result is an empty list.
        """
        if not isinstance(filters, ImageFilters):
            try:
                filters = ImageFilters.model_validate(filters or {})
            except ValidationError as e:
                raise ValidationException.from_pydantic(e, message="Invalid image filters")

        visible = Image.access == AccessLevel.PUBLIC
        if principal:
            visible = or_(visible, Image.owner == principal)

        conditions = [visible]
        for key, value in filters.equality_filters().items():
            conditions.append(getattr(Image, key) == value)

        column = getattr(Image, filters.sort)
        order = column.desc() if filters.dir == "desc" else column.asc()

        query = select(Image).where(and_(*conditions)).order_by(order, Image.id.asc())
        result = await self.db.execute(query)
        images = result.scalars().all()

        return [self.serialize(image, brief=brief, detail=not brief) for image in images]

    async def update(self, image_id: int, patch: dict[str, Any], token: str | None = None) -> Image:
        """
        Patch an image's metadata.

        Unknown keys are merged into ``properties``. Setting a ``location``
        activates the image and forgets the size and checksum of the previous
        file until ``set_file_stat`` records the new ones.

        Raises:
            ValidationException: If the patch is invalid or touches read-only fields
            ImageNotFoundException: If no such image exists
            UnauthorizedException: If the update is denied
        """
        try:
            data = ImageUpdate.model_validate(patch)
        except ValidationError as e:
            raise ValidationException.from_pydantic(e)

        image = await self._load(image_id)
        await self._authorize(token, Operation.UPDATE, image)

        fields = {
            key: value
            for key, value in data.known_fields().items()
            if value is not None or key not in REQUIRED
        }
        await self._check_references(fields)

        if fields.get("location"):
            if "store" not in fields:
                fields["store"] = store_for_location(fields["location"])
            fields["status"] = ImageStatus.ACTIVE
            fields["size"] = None
            fields["checksum"] = None

        for key, value in fields.items():
            setattr(image, key, value)

        extra = data.extra_properties()
        if extra:
            image.properties = {**(image.properties or {}), **extra}

        image.updated_at = _now()
        await self.db.flush()

        logger.info("Updated image %d: %s", image.id, ", ".join(sorted(fields) + sorted(extra)))
        return image

    async def delete(self, image_id: int, token: str | None = None) -> dict[str, Any]:
        """
        Remove an image record.

        Returns:
            The record content as it was before removal
        """
        image = await self._load(image_id)
        await self._authorize(token, Operation.DELETE, image)

        content = self.serialize(image)
        await self.db.delete(image)
        await self.db.flush()

        logger.info("Deleted image %d", image_id)
        return content

    # Upload path

    async def set_status(self, image_id: int, status: ImageStatus) -> None:
        result = await self.db.execute(
            update(Image)
            .where(Image.id == image_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ImageNotFoundException(image_id)

    async def mark_uploaded(self, image_id: int, stored: StoredObject, store: StoreName | None = None) -> Image:
        """Record a finished upload and activate the image."""
        image = await self._load(image_id)
        image.status = ImageStatus.ACTIVE
        image.location = stored.location
        image.size = stored.size
        image.checksum = stored.checksum
        image.uploaded_at = _now()
        if store is not None:
            image.store = store
        await self.db.flush()
        return image

    async def set_file_stat(self, image: Image, stat: ObjectStat) -> Image:
        """Record what the store reports about an image's existing file."""
        if stat.size is not None:
            image.size = stat.size
        if stat.checksum is not None:
            image.checksum = stat.checksum
        await self.db.flush()
        return image

    @staticmethod
    def serialize(image: Image, brief: bool = False, detail: bool = False) -> dict[str, Any]:
        """
        Convert an image to a plain dict.

        Args:
            brief: Only the BRIEF attributes
            detail: Hide the DETAIL_EXC attributes
        """
        data = {}
        for column in Image.__table__.columns:
            key = column.key
            if brief and key not in BRIEF:
                continue
            if detail and key in DETAIL_EXC:
                continue
            value = getattr(image, key)
            if isinstance(value, enum.Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[key] = value
        return data
