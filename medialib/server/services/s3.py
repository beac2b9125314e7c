"""S3 implementation of the object store."""

import logging
import urllib.parse
from datetime import datetime

from aiobotocore.session import get_session
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import NotFound, StoreUnavailable
from .object_store import ObjectListing, ObjectStore, StoredObject, now_ms

logger = logging.getLogger(__name__)

__all__ = ["S3ObjectStore"]

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _to_ms(value: datetime | None) -> int:
    if value is None:
        return now_ms()
    return int(value.timestamp() * 1000)


class S3ObjectStore(ObjectStore):
    """Object store backed by an S3 compatible service."""

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        public_base_url: str = "",
        with_checksums: bool = False,
    ) -> None:
        """Initiate the S3 object store.

        Args:
            endpoint_url (str): The endpoint URL of the S3 service.
            access_key_id (str): The access key ID for S3 authentication.
            secret_access_key (str): The secret access key for S3 authentication.
            region (str): The region where the buckets are located.
            public_base_url (str, optional): Base URL used to build public object
                URLs. Defaults to the endpoint URL.
            with_checksums (bool, optional): Whether to enable checksum handling.
                When False (default), checksums are disabled for compatibility with
                S3-compatible services that do not support them.
        """
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.public_base_url = (public_base_url or endpoint_url).rstrip("/")
        self.with_checksums = with_checksums

    def _create_client(self):
        """Create an S3 client using the provided credentials and endpoint URL."""
        settings = {
            "payload_signing_enabled": False,
            "use_accelerate_endpoint": False,
            "addressing_style": "path",
        }
        if not self.with_checksums:
            settings["checksum_mode"] = "DISABLED"
            settings["request_checksum_calculation"] = "when_required"
            settings["response_checksum_validation"] = "when_required"
        config = Config(
            s3=settings, signature_version="s3v4", disable_request_compression=True
        )
        session = get_session()
        return session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_secret_access_key=self.secret_access_key,
            aws_access_key_id=self.access_key_id,
            config=config,
        )

    @staticmethod
    def _translate(err: Exception, bucket: str, key: str) -> Exception:
        if isinstance(err, ClientError):
            code = str(err.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return NotFound(f"Object {key} not found in {bucket}")
        return StoreUnavailable(f"S3 request failed for {bucket}/{key}: {err}")

    async def list_by_prefix(
        self, bucket: str, prefix: str, delimiter: str | None = None
    ) -> ObjectListing:
        listing = ObjectListing()
        params = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter
        try:
            async with self._create_client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(**params):
                    for common in page.get("CommonPrefixes", []):
                        listing.prefixes.append(common["Prefix"])
                    for obj in page.get("Contents", []):
                        listing.objects.append(
                            StoredObject(
                                bucket=bucket,
                                key=obj["Key"],
                                size=obj.get("Size", 0),
                                # list_objects_v2 does not return content types
                                content_type="",
                                created_at=_to_ms(obj.get("LastModified")),
                            )
                        )
        except (ClientError, BotoCoreError) as err:
            raise self._translate(err, bucket, prefix) from err
        return listing

    async def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str
    ) -> StoredObject:
        try:
            async with self._create_client() as client:
                await client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=data,
                    ACL="public-read",
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as err:
            raise self._translate(err, bucket, key) from err
        logger.info(f"File uploaded path : {self.endpoint_url}/{bucket}/{key}")
        return StoredObject(
            bucket=bucket,
            key=key,
            size=len(data),
            content_type=content_type,
            created_at=now_ms(),
        )

    async def copy_object(self, bucket: str, src_key: str, dst_key: str) -> StoredObject:
        try:
            async with self._create_client() as client:
                await client.copy_object(
                    Bucket=bucket,
                    CopySource={"Bucket": bucket, "Key": src_key},
                    ACL="public-read",
                    Key=dst_key,
                )
                head = await client.head_object(Bucket=bucket, Key=dst_key)
        except (ClientError, BotoCoreError) as err:
            raise self._translate(err, bucket, src_key) from err
        logger.info(f"File copied path : {self.endpoint_url}/{bucket}/{dst_key}")
        return StoredObject(
            bucket=bucket,
            key=dst_key,
            size=head.get("ContentLength", 0),
            content_type=head.get("ContentType", ""),
            created_at=_to_ms(head.get("LastModified")),
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            async with self._create_client() as client:
                await client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as err:
            raise self._translate(err, bucket, key) from err
        logger.info(f"File deleted path : {self.endpoint_url}/{bucket}/{key}")

    async def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        try:
            async with self._create_client() as client:
                response = await client.get_object(Bucket=bucket, Key=key)
                async with response["Body"] as stream:
                    content = await stream.read()
        except (ClientError, BotoCoreError) as err:
            raise self._translate(err, bucket, key) from err
        return content, response.get("ContentType", "")

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/{bucket}/{urllib.parse.quote(key)}"
