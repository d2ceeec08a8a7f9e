"""
Tests for the image registry service.
"""

import pytest

from vmregistry.auth.client import Operation
from vmregistry.core.exceptions import (
    ImageNotFoundException,
    UnauthorizedException,
    UnsupportedStoreException,
    ValidationException,
)
from vmregistry.models.image import AccessLevel, ImageStatus, StoreName
from vmregistry.services.registry import ImageRegistry
from vmregistry.storage.base import ObjectStat, StoredObject


class FakeAuthorizer:
    """Allows owners only, and records every decision it was asked for."""

    def __init__(self, principal: str | None):
        self.principal = principal
        self.calls: list[tuple[str | None, Operation, str | None]] = []

    async def authorize(self, token, operation, image_owner) -> bool:
        self.calls.append((token, operation, image_owner))
        return self.principal is not None and self.principal == image_owner


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_assigns_server_fields(self, registry: ImageRegistry, sample_image_data):
        image = await registry.create(sample_image_data)

        assert image.id == 1
        assert image.uri.endswith("/images/1")
        assert image.status == ImageStatus.QUEUED
        assert image.access == AccessLevel.PUBLIC
        assert image.created_at is not None
        assert image.access_count == 0

    @pytest.mark.asyncio
    async def test_ids_are_sequential(self, registry: ImageRegistry, sample_image_data):
        first = await registry.create(sample_image_data)
        second = await registry.create(sample_image_data)

        assert (first.id, second.id) == (1, 2)

    @pytest.mark.asyncio
    async def test_access_defaults_to_public(self, registry: ImageRegistry):
        image = await registry.create({"name": "minimal", "architecture": "i386"})

        assert image.access == AccessLevel.PUBLIC

    @pytest.mark.asyncio
    async def test_location_activates_image(self, registry: ImageRegistry, sample_image_data):
        image = await registry.create({**sample_image_data, "location": "http://www.example.com/1.iso"})

        assert image.status == ImageStatus.ACTIVE
        assert image.store == StoreName.HTTP

    @pytest.mark.asyncio
    async def test_unknown_location_scheme(self, registry: ImageRegistry, sample_image_data):
        with pytest.raises(UnsupportedStoreException):
            await registry.create({**sample_image_data, "location": "s2://bucket/1.iso"})

    @pytest.mark.asyncio
    async def test_owner_comes_from_caller(self, registry: ImageRegistry, sample_image_data):
        image = await registry.create(sample_image_data, owner="caller")

        assert image.owner == "caller"
        assert (await registry.create(sample_image_data)).owner is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["owner", "status", "size", "checksum", "uploaded_at"])
    async def test_server_fields_rejected(self, registry: ImageRegistry, sample_image_data, field):
        with pytest.raises(ValidationException):
            await registry.create({**sample_image_data, field: "1"}, owner="caller")

    @pytest.mark.asyncio
    async def test_extra_attributes_become_properties(self, registry: ImageRegistry, sample_image_data):
        image = await registry.create({**sample_image_data, "distro": "ubuntu", "properties": {"arch_bits": 64}})

        assert image.properties == {"distro": "ubuntu", "arch_bits": 64}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "record",
        [
            {"architecture": "x86_64"},
            {"name": "no architecture"},
            {"name": "bad arch", "architecture": "sparc"},
            {"name": "bad access", "architecture": "i386", "access": "secret"},
            {"name": "bad store", "architecture": "i386", "store": "filee"},
            {"name": "has id", "architecture": "i386", "id": 7},
            {"name": "has status", "architecture": "i386", "status": "active"},
        ],
    )
    async def test_invalid_records(self, registry: ImageRegistry, record):
        with pytest.raises(ValidationException):
            await registry.create(record)

    @pytest.mark.asyncio
    async def test_kernel_must_reference_kernel_image(self, registry: ImageRegistry, sample_image_data):
        kernel = await registry.create({"name": "kernel", "architecture": "x86_64", "type": "kernel"})
        other = await registry.create(sample_image_data)

        image = await registry.create({**sample_image_data, "kernel": kernel.id})
        assert image.kernel == kernel.id

        with pytest.raises(ValidationException):
            await registry.create({**sample_image_data, "kernel": other.id})
        with pytest.raises(ValidationException):
            await registry.create({**sample_image_data, "ramdisk": 999})


class TestGet:
    @pytest.mark.asyncio
    async def test_get_counts_access(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)

        image = await registry.get(created.id)
        assert image.access_count == 1
        assert image.accessed_at is not None

        image = await registry.get(created.id)
        assert image.access_count == 2

    @pytest.mark.asyncio
    async def test_get_missing(self, registry: ImageRegistry):
        with pytest.raises(ImageNotFoundException) as exc_info:
            await registry.get(42)

        assert exc_info.value.message == "No image found with id '42'"

    @pytest.mark.asyncio
    async def test_private_image_requires_authorization(self, db_session, registry: ImageRegistry, sample_image_data):
        created = await registry.create({**sample_image_data, "access": "private"}, owner="alice")

        alice = ImageRegistry(db_session, authorizer=FakeAuthorizer("alice"))
        assert (await alice.get(created.id, token="alice-token")).id == created.id

        bob = ImageRegistry(db_session, authorizer=FakeAuthorizer("bob"))
        with pytest.raises(UnauthorizedException):
            await bob.get(created.id, token="bob-token")

    @pytest.mark.asyncio
    async def test_public_image_skips_authorization(self, db_session, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data, owner="alice")
        authorizer = FakeAuthorizer(None)

        await ImageRegistry(db_session, authorizer=authorizer).get(created.id)

        assert authorizer.calls == []


class TestList:
    @pytest.mark.asyncio
    async def test_empty_listing(self, registry: ImageRegistry):
        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_public_only_without_principal(self, registry: ImageRegistry, sample_image_data):
        public = await registry.create(sample_image_data, owner="alice")
        await registry.create({**sample_image_data, "access": "private"}, owner="alice")

        images = await registry.list()

        assert [image["id"] for image in images] == [public.id]

    @pytest.mark.asyncio
    async def test_owner_sees_private_images(self, registry: ImageRegistry, sample_image_data):
        await registry.create(sample_image_data, owner="alice")
        await registry.create({**sample_image_data, "access": "private"}, owner="alice")
        await registry.create({**sample_image_data, "access": "private"}, owner="bob")

        images = await registry.list(principal="alice")

        assert [image["id"] for image in images] == [1, 2]

    @pytest.mark.asyncio
    async def test_brief_fields(self, registry: ImageRegistry, sample_image_data):
        await registry.create(sample_image_data)

        [image] = await registry.list(brief=True)

        assert set(image) == {"id", "uri", "name", "architecture", "type", "format", "store", "size", "created_at"}

    @pytest.mark.asyncio
    async def test_detail_hides_internal_fields(self, registry: ImageRegistry, sample_image_data):
        await registry.create(sample_image_data, owner="alice")

        [image] = await registry.list()

        assert image["status"] == "queued"
        for hidden in ("owner", "uploaded_at", "accessed_at", "access_count"):
            assert hidden not in image

    @pytest.mark.asyncio
    async def test_filters_and_sorting(self, registry: ImageRegistry):
        await registry.create({"name": "b", "architecture": "x86_64"})
        await registry.create({"name": "a", "architecture": "i386"})
        await registry.create({"name": "c", "architecture": "x86_64"})

        images = await registry.list({"architecture": "x86_64", "sort": "name", "dir": "desc"})

        assert [image["name"] for image in images] == ["c", "b"]

    @pytest.mark.asyncio
    async def test_unknown_filter(self, registry: ImageRegistry):
        with pytest.raises(ValidationException):
            await registry.list({"colour": "blue"})


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields_and_properties(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)

        image = await registry.update(created.id, {"name": "renamed", "distro": "debian"})

        assert image.name == "renamed"
        assert image.properties == {"distro": "debian"}
        assert image.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_location_activates(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)

        image = await registry.update(created.id, {"location": "http://www.example.com/1.iso"})

        assert image.status == ImageStatus.ACTIVE
        assert image.store == StoreName.HTTP

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "patch",
        [{"id": 99}, {"status": "active"}, {"size": 999}, {"checksum": "deadbeef"}, {"owner": "mallory"}],
    )
    async def test_update_rejects_server_fields(self, registry: ImageRegistry, sample_image_data, patch):
        created = await registry.create(sample_image_data)

        with pytest.raises(ValidationException):
            await registry.update(created.id, patch)

        image = await registry.get(created.id)
        assert image.status == ImageStatus.QUEUED
        assert (image.size, image.checksum, image.owner) == (None, None, None)

    @pytest.mark.asyncio
    async def test_new_location_forgets_file_stat(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create({**sample_image_data, "location": "http://www.example.com/1.iso"})
        await registry.set_file_stat(created, ObjectStat(size=10, checksum="abc"))

        image = await registry.update(created.id, {"location": "http://www.example.com/2.iso"})
        assert (image.size, image.checksum) == (None, None)

        image = await registry.set_file_stat(image, ObjectStat(size=20, checksum=None))
        assert (image.size, image.checksum) == (20, None)

    @pytest.mark.asyncio
    async def test_update_missing(self, registry: ImageRegistry):
        with pytest.raises(ImageNotFoundException):
            await registry.update(7, {"name": "x"})

    @pytest.mark.asyncio
    async def test_update_denied(self, db_session, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data, owner="alice")
        authorizer = FakeAuthorizer("bob")

        with pytest.raises(UnauthorizedException):
            await ImageRegistry(db_session, authorizer=authorizer).update(created.id, {"name": "x"}, token="t")

        assert authorizer.calls == [("t", Operation.UPDATE, "alice")]
        assert (await registry.get(created.id)).name == sample_image_data["name"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_returns_content(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)

        content = await registry.delete(created.id)

        assert content["id"] == created.id
        assert content["name"] == sample_image_data["name"]
        with pytest.raises(ImageNotFoundException):
            await registry.get(created.id)

    @pytest.mark.asyncio
    async def test_deleted_ids_are_not_reused(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)
        await registry.delete(created.id)

        assert (await registry.create(sample_image_data)).id == created.id + 1

    @pytest.mark.asyncio
    async def test_delete_denied(self, db_session, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data, owner="alice")

        with pytest.raises(UnauthorizedException):
            await ImageRegistry(db_session, authorizer=FakeAuthorizer("bob")).delete(created.id)

        assert (await registry.get(created.id)).id == created.id


class TestUploadHelpers:
    @pytest.mark.asyncio
    async def test_mark_uploaded(self, registry: ImageRegistry, sample_image_data):
        created = await registry.create(sample_image_data)
        await registry.set_status(created.id, ImageStatus.SAVING)

        image = await registry.mark_uploaded(
            created.id,
            StoredObject(location="file:///images/1.iso", size=10, checksum="abc"),
            store=StoreName.FILE,
        )

        assert image.status == ImageStatus.ACTIVE
        assert (image.location, image.size, image.checksum) == ("file:///images/1.iso", 10, "abc")
        assert image.uploaded_at is not None

    @pytest.mark.asyncio
    async def test_set_status_missing(self, registry: ImageRegistry):
        with pytest.raises(ImageNotFoundException):
            await registry.set_status(5, ImageStatus.KILLED)
