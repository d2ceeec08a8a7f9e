"""
S3-compatible storage backends.

    s3://<access_key>:<secret_key>@s3.amazonaws.com/<bucket>/<key>
    cumulus://<access_key>:<secret_key>@<host>:<port>/<bucket>/<key>
    walrus://<access_key>:<secret_key>@<host>:<port>/services/Walrus/<bucket>/<key>
    lunacloud://<access_key>:<secret_key>@lcs.lunacloud.com/<bucket>/<key>
"""

import hashlib
import logging
from collections.abc import AsyncIterable, AsyncIterator
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import iterate_in_threadpool, run_in_threadpool

from vmregistry.core.exceptions import (
    BackendUnavailableException,
    ConflictException,
    StoreObjectNotFoundException,
)
from vmregistry.storage.base import (
    CHUNK_SIZE,
    ObjectStat,
    StorageBackend,
    StoredObject,
    strip_etag,
)

logger = logging.getLogger(__name__)

# S3 rejects multipart parts smaller than 5 MiB (except the last one)
MIN_PART_SIZE = 5 * 1024 * 1024

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Backend(StorageBackend):
    """
    Amazon S3 object storage.

    Blocking boto3 calls run in the threadpool. The client is created on
    first use so that constructing a backend never touches the network or
    validates credentials.
    """

    name = "s3"
    default_host = "s3.amazonaws.com"
    default_port: int | None = None
    path_prefix = ""
    signature_version = "s3v4"

    def __init__(self, locator, config=None):
        super().__init__(locator, config)
        self._client = None

    # Locator and configuration

    def _misconfigured(self, missing: str) -> BackendUnavailableException:
        return BackendUnavailableException(
            message=f"The {self.name} store is missing its {missing}",
            details={"store": self.name, "locator": self.locator, "required": missing},
        )

    def _netloc(self) -> str:
        """``host[:port]`` of the provider endpoint."""
        if self.uri:
            try:
                host, port = self.uri.hostname, self.uri.port
            except ValueError:
                raise self._misconfigured("port") from None
        elif self.config.get("endpoint_url"):
            return urlsplit(self.config["endpoint_url"]).netloc
        else:
            host = self.config.get("host") or self.default_host
            port = self.config.get("port") or self.default_port
        if not host:
            raise self._misconfigured("host")
        return f"{host}:{port}" if port else host

    def _endpoint_url(self) -> str | None:
        """Endpoint handed to boto3, None meaning the AWS default."""
        netloc = self._netloc()
        configured = self.config.get("endpoint_url")
        if configured and urlsplit(configured).netloc == netloc:
            return configured
        if netloc.endswith("amazonaws.com"):
            return None
        return f"http://{netloc}{self.path_prefix}"

    def _credentials(self) -> tuple[str, str]:
        if self.uri:
            access_key, secret_key = self.uri_credentials()
        else:
            access_key = self.config.get("access_key")
            secret_key = self.config.get("secret_key")
        if not access_key or not secret_key:
            raise self._misconfigured("credentials")
        return access_key, secret_key

    def _target(self) -> tuple[str, str]:
        """Bucket and key addressed by the locator."""
        if not self.uri:
            raise StoreObjectNotFoundException(self.locator, self.name)
        path = self.uri.path
        if self.path_prefix and path.startswith(self.path_prefix):
            path = path[len(self.path_prefix):]
        bucket, _, key = path.lstrip("/").partition("/")
        if not bucket or not key:
            raise self._misconfigured("bucket and key")
        return bucket, key

    def _bucket(self) -> str:
        if self.uri:
            return self._target()[0]
        bucket = self.config.get("bucket")
        if not bucket:
            raise self._misconfigured("bucket")
        return bucket

    def _location(self, bucket: str, key: str) -> str:
        access_key, secret_key = self._credentials()
        credentials = f"{quote(access_key, safe='')}:{quote(secret_key, safe='')}"
        return f"{self.name}://{credentials}@{self._netloc()}{self.path_prefix}/{bucket}/{key}"

    @property
    def part_size(self) -> int:
        return max(int(self.config.get("part_size") or MIN_PART_SIZE), MIN_PART_SIZE)

    @property
    def client(self):
        """Lazily created boto3 S3 client."""
        if self._client is None:
            access_key, secret_key = self._credentials()
            self._client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url(),
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=self.config.get("region") or "us-east-1",
                config=Config(
                    signature_version=self.signature_version,
                    s3={"addressing_style": "path"},
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
        return self._client

    # Error mapping

    def _translate(self, e: Exception, bucket: str | None = None, key: str | None = None):
        if isinstance(e, ClientError):
            code = str(e.response.get("Error", {}).get("Code"))
            if code in NOT_FOUND_CODES:
                return StoreObjectNotFoundException(self.locator, self.name)
        details = {"store": self.name, "locator": self.locator}
        if bucket:
            details["bucket"] = bucket
        if key:
            details["key"] = key
        return BackendUnavailableException(message=f"{self.name} request failed: {e}", details=details)

    async def _head(self, bucket: str, key: str) -> dict:
        try:
            return await run_in_threadpool(self.client.head_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, bucket, key) from e

    # Operations

    async def fetch(self) -> AsyncIterator[bytes]:
        bucket, key = self._target()
        try:
            response = await run_in_threadpool(self.client.get_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, bucket, key) from e
        return self._iter_body(response["Body"], bucket, key)

    async def _iter_body(self, body, bucket: str, key: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in iterate_in_threadpool(body.iter_chunks(CHUNK_SIZE)):
                yield chunk
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, bucket, key) from e
        finally:
            body.close()

    async def store(self, name: str, chunks: AsyncIterable[bytes]) -> StoredObject:
        """
        Upload the stream as ``<bucket>/<name>``.

        Data is buffered one part at a time. A stream that never fills a
        whole part is sent with a single PUT, anything larger goes through
        a multipart upload that is aborted if the transfer fails.
        """
        bucket = self._bucket()
        key = name

        try:
            await self._head(bucket, key)
        except StoreObjectNotFoundException:
            pass
        else:
            raise ConflictException(
                message=f"The image file {bucket}/{key} already exists",
                details={"store": self.name, "bucket": bucket, "key": key},
            )

        part_size = self.part_size
        md5 = hashlib.md5()
        size = 0
        buffer = bytearray()
        upload_id = None
        parts = []

        try:
            async for chunk in chunks:
                md5.update(chunk)
                size += len(chunk)
                buffer.extend(chunk)
                while len(buffer) >= part_size:
                    if upload_id is None:
                        created = await run_in_threadpool(
                            self.client.create_multipart_upload, Bucket=bucket, Key=key
                        )
                        upload_id = created["UploadId"]
                    parts.append(await self._upload_part(bucket, key, upload_id, len(parts) + 1, bytes(buffer[:part_size])))
                    del buffer[:part_size]

            if upload_id is None:
                await run_in_threadpool(self.client.put_object, Bucket=bucket, Key=key, Body=bytes(buffer))
            else:
                if buffer:
                    parts.append(await self._upload_part(bucket, key, upload_id, len(parts) + 1, bytes(buffer)))
                await run_in_threadpool(
                    self.client.complete_multipart_upload,
                    Bucket=bucket,
                    Key=key,
                    UploadId=upload_id,
                    MultipartUpload={"Parts": parts},
                )
        except (ClientError, BotoCoreError) as e:
            await self._abort(bucket, key, upload_id)
            raise self._translate(e, bucket, key) from e
        except Exception:
            await self._abort(bucket, key, upload_id)
            raise

        location = self._location(bucket, key)
        logger.info("Stored %d bytes in %s bucket %s as %s", size, self.name, bucket, key)
        return StoredObject(location=location, size=size, checksum=md5.hexdigest())

    async def _upload_part(self, bucket: str, key: str, upload_id: str, number: int, data: bytes) -> dict:
        response = await run_in_threadpool(
            self.client.upload_part,
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=number,
            Body=data,
        )
        return {"ETag": response["ETag"], "PartNumber": number}

    async def _abort(self, bucket: str, key: str, upload_id: str | None) -> None:
        """Best-effort abort of an unfinished multipart upload."""
        if upload_id is None:
            return
        try:
            await run_in_threadpool(
                self.client.abort_multipart_upload, Bucket=bucket, Key=key, UploadId=upload_id
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Could not abort multipart upload %s for %s/%s: %s", upload_id, bucket, key, e)

    async def delete(self) -> None:
        bucket, key = self._target()
        await self._head(bucket, key)
        try:
            await run_in_threadpool(self.client.delete_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, bucket, key) from e
        logger.info("Deleted %s/%s from %s", bucket, key, self.name)

    async def exists(self) -> bool:
        bucket, key = self._target()
        try:
            await self._head(bucket, key)
        except StoreObjectNotFoundException:
            return False
        return True

    async def stat(self) -> ObjectStat:
        bucket, key = self._target()
        response = await self._head(bucket, key)
        return ObjectStat(
            size=response.get("ContentLength"),
            checksum=strip_etag(response.get("ETag")),
        )



class CumulusBackend(S3Backend):
    """Nimbus Cumulus, an S3 clone addressed by host and port."""

    name = "cumulus"
    default_host = None
    default_port = 8888
    signature_version = "s3"


class WalrusBackend(S3Backend):
    """Eucalyptus Walrus, served under ``/services/Walrus``."""

    name = "walrus"
    default_host = None
    default_port = 8773
    path_prefix = "/services/Walrus"
    signature_version = "s3"


class LunacloudBackend(S3Backend):
    name = "lunacloud"
    default_host = "lcs.lunacloud.com"
    default_port = None
    signature_version = "s3"
