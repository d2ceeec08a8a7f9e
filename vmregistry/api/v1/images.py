"""
Image endpoints.

Metadata travels in ``x-image-meta-*`` headers on writes and HEAD, and as
JSON on the other reads. Image files are sent as raw
``application/octet-stream`` request and response bodies.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse

from vmregistry.auth.dependencies import Auth, Token
from vmregistry.core.exceptions import (
    NotFoundException,
    RegistryException,
    ValidationException,
)
from vmregistry.core.headers import pull_meta_from_headers, push_meta_into_headers
from vmregistry.dependencies import Registry, StoreConfigs
from vmregistry.models.image import Image
from vmregistry.services.registry import ImageRegistry
from vmregistry.services.transfer import describe_location, upload_image
from vmregistry.storage.base import get_mime_type
from vmregistry.storage.resolver import resolve

logger = logging.getLogger(__name__)

router = APIRouter()


def _has_body(request: Request) -> bool:
    """Whether the client is sending an image file."""
    if "chunked" in request.headers.get("transfer-encoding", "").lower():
        return True
    length = request.headers.get("content-length")
    return bool(length) and length.isdigit() and int(length) > 0


def _read_meta(request: Request) -> tuple[dict[str, Any], bool]:
    meta = pull_meta_from_headers(request.headers)
    has_body = _has_body(request)
    if meta.get("location") and has_body:
        raise ValidationException(
            message="An image location and an image file cannot both be provided",
            details={"location": meta["location"]},
        )
    return meta, has_body


async def _record_location(registry: ImageRegistry, image: Image, configs: dict[str, Any]) -> Image:
    """Fill size and checksum from the image's external file."""
    return await registry.set_file_stat(image, await describe_location(image.location, configs))


@router.get("")
async def list_images(request: Request, registry: Registry, auth: Auth, token: Token):
    """
    Brief listing of public images, plus the caller's private ones.

    Query parameters filter by attribute (e.g. ``?architecture=x86_64``),
    ``sort`` and ``dir`` control ordering.
    """
    claims = await auth.authenticate(token)
    images = await registry.list(
        dict(request.query_params),
        brief=True,
        principal=claims.get("user_id") if claims else None,
    )
    return {"images": images}


@router.get("/detail")
async def list_images_detail(request: Request, registry: Registry, auth: Auth, token: Token):
    """Same as the brief listing, with every public attribute."""
    claims = await auth.authenticate(token)
    images = await registry.list(
        dict(request.query_params),
        brief=False,
        principal=claims.get("user_id") if claims else None,
    )
    return {"images": images}


@router.get("/{image_id}")
async def get_image(image_id: int, registry: Registry, token: Token):
    """Image metadata as JSON."""
    image = await registry.get(image_id, token)
    return {"image": registry.serialize(image, detail=True)}


@router.head("/{image_id}")
async def head_image(image_id: int, registry: Registry, configs: StoreConfigs, token: Token):
    """Image metadata in ``x-image-meta-*`` headers, checking the file is still there."""
    image = await registry.get(image_id, token)
    if image.location:
        await resolve(image.location, configs).stat()
    return Response(headers=push_meta_into_headers(registry.serialize(image, detail=True)))


@router.get("/{image_id}/file")
async def download_image_file(image_id: int, registry: Registry, configs: StoreConfigs, token: Token):
    """
    Stream the image file from its store.
    Metadata is returned in ``x-image-meta-*`` headers.
    """
    image = await registry.get(image_id, token)
    if not image.location:
        raise NotFoundException(
            message=f"Image {image_id} has no image file",
            details={"id": image_id, "status": image.status.value},
        )

    backend = resolve(image.location, configs)
    chunks = await backend.fetch()

    headers = push_meta_into_headers(registry.serialize(image, detail=True))
    if image.size is not None:
        headers["Content-Length"] = str(image.size)
    filename = f"{image.id}.{image.format.value if image.format else 'none'}"
    headers["Content-Disposition"] = f'attachment; filename="{filename}"'

    return StreamingResponse(
        chunks,
        media_type=get_mime_type(image.format.value if image.format else None),
        headers=headers,
    )


@router.post("", status_code=201)
async def create_image(
    request: Request,
    registry: Registry,
    configs: StoreConfigs,
    auth: Auth,
    token: Token,
):
    """
    Register a new image.

    Metadata comes from ``x-image-meta-*`` headers. The image file is either
    the request body or an existing file named by ``x-image-meta-location``,
    never both.
    """
    meta, has_body = _read_meta(request)

    claims = await auth.authenticate(token)
    image = await registry.create(meta, owner=claims.get("user_id") if claims else None)
    if meta.get("location"):
        image = await _record_location(registry, image, configs)

    if has_body:
        await registry.commit()
        image = await upload_image(registry, image, request.stream(), configs)

    return {"image": registry.serialize(image, detail=True)}


@router.put("/{image_id}")
async def update_image(
    image_id: int,
    request: Request,
    registry: Registry,
    configs: StoreConfigs,
    token: Token,
):
    """
    Update an image's metadata and/or upload its file.

    Only queued images accept an image file.
    """
    meta, has_body = _read_meta(request)

    image = await registry.update(image_id, meta, token)
    if meta.get("location"):
        image = await _record_location(registry, image, configs)

    if has_body:
        await registry.commit()
        image = await upload_image(registry, image, request.stream(), configs)

    return {"image": registry.serialize(image, detail=True)}


@router.delete("/{image_id}")
async def delete_image(image_id: int, registry: Registry, configs: StoreConfigs, token: Token):
    """
    Delete an image and, when possible, its file.

    The record goes first. A file that cannot be removed is logged and left
    behind.
    """
    content = await registry.delete(image_id, token)
    await registry.commit()

    location = content.get("location")
    if location:
        try:
            await resolve(location, configs).delete()
        except NotFoundException:
            logger.warning("Image %d file was already gone from %s", image_id, location)
        except RegistryException as e:
            logger.warning("Could not delete image %d file at %s: %s", image_id, location, e.message)

    return {"image": content}
