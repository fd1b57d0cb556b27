from __future__ import annotations

import logging
from typing import BinaryIO, Optional, Protocol, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import SourceConfig
from .errors import InconsistentStateError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

DIRECTORY_CONTENT_TYPE = "application/directory"
NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
NO_ACCESS_BLOCK_CODES = {
    "NoSuchPublicAccessBlockConfiguration",
    "NotImplemented",
    "MethodNotAllowed",
    "XNotImplemented",
}

Payload = Union[bytes, BinaryIO]


class ObjectContainer(Protocol):
    name: str

    @property
    def public_base_url(self) -> str: ...

    def list_by_prefix(self, prefix: Optional[str]) -> list[str]: ...

    def exists(self, key: str) -> bool: ...

    def read_object(self, key: str) -> bytes: ...

    def write_object(self, key: str, data: Payload, content_type: Optional[str] = None) -> None: ...

    def delete_object(self, key: str) -> None: ...

    def move_object(self, from_key: str, to_key: str) -> None: ...


class StoreConnection(Protocol):
    def list_public_containers(self) -> list[str]: ...

    def get_container(self, name: str) -> ObjectContainer: ...


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _convert(exc: Exception, key: str = "") -> Exception:
    if isinstance(exc, ClientError) and _error_code(exc) in NOT_FOUND_CODES:
        return NotFoundError(key, detail=str(exc))
    return StoreError(key, detail=str(exc))


class S3Connection:
    """Resolves one boto3 client per instance from a source's credentials."""

    def __init__(self, config: SourceConfig) -> None:
        self._config = config
        self._client = None

    def client(self):
        if self._client is not None:
            return self._client
        try:
            self._client = self._build_client()
        except BotoCoreError as exc:
            raise StoreError("", detail=str(exc)) from exc
        return self._client

    def _build_client(self):
        config = self._config
        if config.profile:
            session = boto3.session.Session(profile_name=config.profile)
        elif config.access_key_id and config.secret_access_key:
            session = boto3.session.Session(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
            )
        else:
            session = boto3.session.Session()
        kwargs = {}
        if config.region:
            kwargs["region_name"] = config.region
        if config.endpoint_url:
            kwargs["endpoint_url"] = config.endpoint_url
        return session.client("s3", **kwargs)

    def list_public_containers(self) -> list[str]:
        client = self.client()
        try:
            response = client.list_buckets()
        except (ClientError, BotoCoreError) as exc:
            raise StoreError("", detail=str(exc)) from exc
        names = [bucket["Name"] for bucket in response.get("Buckets", [])]
        return [name for name in names if self._allows_public_read(name)]

    def _allows_public_read(self, bucket: str) -> bool:
        client = self.client()
        try:
            response = client.get_public_access_block(Bucket=bucket)
        except ClientError as exc:
            if _error_code(exc) in NO_ACCESS_BLOCK_CODES:
                return True
            logger.debug("[bucketfs] Public access probe failed for %s: %s", bucket, exc)
            return False
        except BotoCoreError as exc:
            logger.debug("[bucketfs] Public access probe failed for %s: %s", bucket, exc)
            return False
        block = response.get("PublicAccessBlockConfiguration", {})
        return not (block.get("BlockPublicPolicy") and block.get("RestrictPublicBuckets"))

    def get_container(self, name: str) -> "S3Container":
        if not name:
            raise NotFoundError("", detail="no container configured")
        return S3Container(self.client(), name, endpoint_url=self._config.endpoint_url)


class S3Container:
    def __init__(self, client, name: str, endpoint_url: Optional[str] = None) -> None:
        self._client = client
        self.name = name
        self._endpoint_url = endpoint_url
        self._region: Optional[str] = None

    @property
    def public_base_url(self) -> str:
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self.name}"
        region = self._bucket_region()
        if region == "us-east-1":
            return f"https://{self.name}.s3.amazonaws.com"
        return f"https://{self.name}.s3.{region}.amazonaws.com"

    def _bucket_region(self) -> str:
        if self._region is not None:
            return self._region
        try:
            response = self._client.get_bucket_location(Bucket=self.name)
        except (ClientError, BotoCoreError) as exc:
            raise _convert(exc, self.name) from exc
        self._region = response.get("LocationConstraint") or "us-east-1"
        return self._region

    def list_by_prefix(self, prefix: Optional[str]) -> list[str]:
        keys: list[str] = []
        continuation: Optional[str] = None
        while True:
            kwargs = {
                "Bucket": self.name,
                "MaxKeys": 1000,
            }
            if prefix:
                kwargs["Prefix"] = prefix
            if continuation:
                kwargs["ContinuationToken"] = continuation
            try:
                response = self._client.list_objects_v2(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise _convert(exc, prefix or "") from exc
            for entry in response.get("Contents", []):
                key = entry.get("Key")
                if key:
                    keys.append(key)
            if response.get("IsTruncated"):
                continuation = response.get("NextContinuationToken")
            else:
                break
        return keys

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.name, Key=key)
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                return False
            raise StoreError(key, detail=str(exc)) from exc
        except BotoCoreError as exc:
            raise StoreError(key, detail=str(exc)) from exc
        return True

    def read_object(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _convert(exc, key) from exc
        body = response.get("Body")
        if body is None:
            return b""
        try:
            return body.read()
        finally:
            body.close()

    def write_object(
        self, key: str, data: Payload, content_type: Optional[str] = None
    ) -> None:
        kwargs = {"Bucket": self.name, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            self._client.put_object(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(key, detail=str(exc)) from exc

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _convert(exc, key) from exc

    def copy_object(self, from_key: str, to_key: str) -> None:
        try:
            self._client.copy_object(
                Bucket=self.name,
                Key=to_key,
                CopySource={"Bucket": self.name, "Key": from_key},
            )
        except (ClientError, BotoCoreError) as exc:
            raise _convert(exc, from_key) from exc

    def move_object(self, from_key: str, to_key: str) -> None:
        # S3 has no rename; the copy must land before the source goes away.
        self.copy_object(from_key, to_key)
        try:
            self.delete_object(from_key)
        except (StoreError, NotFoundError) as exc:
            raise InconsistentStateError(from_key, to_key, detail=exc.detail) from exc
