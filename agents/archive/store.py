"""
Remote object stores for proof archives.

A store is created with a single implementation; failover between stores is
the explicit FallbackObjectStore composite, never an implicit branch.

Object creation is two-phase like the content-addressed store it fronts:
create_object registers the name with its size and the 7 expected
checksums, upload_object then sends the body, which must match.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

import urllib3
from minio import Minio
from minio.error import MinioException

from core.crypto import sha256
from core.schemas.errors import StorageError
from core.schemas.oracle import EXPECTED_CHECKSUM_COUNT

logger = logging.getLogger(__name__)

# Monikers of providers that must not hold production archives
_EXCLUDED_MONIKERS = ("test", "qa")


@dataclass(frozen=True)
class StorageProvider:
    endpoint: str
    moniker: str = ""
    operator_address: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "StorageProvider":
        return cls(
            endpoint=data["endpoint"],
            moniker=data.get("moniker", ""),
            operator_address=data.get("operator_address"),
        )


def select_primary_provider(providers: Sequence[StorageProvider]) -> StorageProvider:
    """
    First provider whose moniker mentions neither "test" nor "qa";
    the first provider overall when every one does.
    """
    if not providers:
        raise StorageError("no storage providers configured")
    for provider in providers:
        moniker = provider.moniker.lower()
        if not any(word in moniker for word in _EXCLUDED_MONIKERS):
            return provider
    return providers[0]


@runtime_checkable
class ObjectStore(Protocol):
    """Bucketed object store. Every failure raises StorageError."""

    def providers(self) -> list[StorageProvider]:
        ...

    def bucket_exists(self, bucket: str) -> bool:
        ...

    def create_bucket(self, bucket: str, provider: StorageProvider) -> None:
        ...

    def create_object(
        self,
        bucket: str,
        name: str,
        payload_size: int,
        checksums: list[bytes],
        content_type: str = "application/json",
    ) -> None:
        ...

    def upload_object(self, bucket: str, name: str, body: bytes) -> None:
        ...

    def list_objects(self, bucket: str) -> list[str]:
        ...


@dataclass
class _StagedObject:
    payload_size: int
    checksums: list[bytes]
    content_type: str


class MinioObjectStore:
    """
    ObjectStore over an S3-compatible gateway.

    Checksums travel as object metadata; the full-payload digest is checked
    against the body before upload.
    """

    def __init__(
        self,
        providers: Sequence[StorageProvider],
        *,
        access_key: str,
        secret_key: str,
        secure: bool = True,
        client_factory: Optional[Callable[[StorageProvider], Minio]] = None,
    ) -> None:
        self._providers = list(providers)
        self._access_key = access_key
        self._secret_key = secret_key
        self._secure = secure
        self._client_factory = client_factory or self._default_client
        self._clients: dict[str, Minio] = {}
        self._staged: dict[tuple[str, str], _StagedObject] = {}

    def _default_client(self, provider: StorageProvider) -> Minio:
        return Minio(
            provider.endpoint,
            access_key=self._access_key,
            secret_key=self._secret_key,
            secure=self._secure,
        )

    def _client(self, provider: Optional[StorageProvider] = None) -> Minio:
        provider = provider or select_primary_provider(self._providers)
        if provider.endpoint not in self._clients:
            self._clients[provider.endpoint] = self._client_factory(provider)
        return self._clients[provider.endpoint]

    def providers(self) -> list[StorageProvider]:
        return list(self._providers)

    def bucket_exists(self, bucket: str) -> bool:
        try:
            return bool(self._client().bucket_exists(bucket))
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise StorageError(f"bucket lookup failed: {e}") from e

    def create_bucket(self, bucket: str, provider: StorageProvider) -> None:
        try:
            self._client(provider).make_bucket(bucket)
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise StorageError(f"bucket create failed on {provider.endpoint}: {e}") from e
        logger.info(f"Created bucket {bucket} on {provider.moniker or provider.endpoint}")

    def create_object(
        self,
        bucket: str,
        name: str,
        payload_size: int,
        checksums: list[bytes],
        content_type: str = "application/json",
    ) -> None:
        if len(checksums) != EXPECTED_CHECKSUM_COUNT:
            raise StorageError(
                f"expected {EXPECTED_CHECKSUM_COUNT} checksums, got {len(checksums)}",
                retryable=False,
            )
        self._staged[(bucket, name)] = _StagedObject(payload_size, list(checksums), content_type)

    def upload_object(self, bucket: str, name: str, body: bytes) -> None:
        staged = self._staged.pop((bucket, name), None)
        if staged is None:
            raise StorageError(f"object {name} was not created before upload", retryable=False)
        if len(body) != staged.payload_size or sha256(body) != staged.checksums[0]:
            raise StorageError(f"body of {name} does not match its declared checksums", retryable=False)

        metadata = {"payload-size": str(staged.payload_size)}
        for i, digest in enumerate(staged.checksums):
            metadata[f"checksum-{i}"] = digest.hex()

        try:
            self._client().put_object(
                bucket,
                name,
                io.BytesIO(body),
                length=len(body),
                content_type=staged.content_type,
                metadata=metadata,
            )
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise StorageError(f"upload of {name} failed: {e}") from e

    def list_objects(self, bucket: str) -> list[str]:
        try:
            return [obj.object_name for obj in self._client().list_objects(bucket)]
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise StorageError(f"listing {bucket} failed: {e}") from e


class FallbackObjectStore:
    """
    Tries the primary store and, on StorageError, the fallback.

    The two phases of one object (create, upload) stick to whichever store
    accepted the create.
    """

    def __init__(self, primary: ObjectStore, fallback: ObjectStore) -> None:
        self.primary = primary
        self.fallback = fallback
        self._routes: dict[tuple[str, str], ObjectStore] = {}

    def _attempt(self, op: str, fn: Callable[[ObjectStore], object]):
        try:
            return self.primary, fn(self.primary)
        except StorageError as e:
            logger.warning(f"Primary store {op} failed, trying fallback: {e.message}")
            return self.fallback, fn(self.fallback)

    def providers(self) -> list[StorageProvider]:
        return self.primary.providers() + self.fallback.providers()

    def bucket_exists(self, bucket: str) -> bool:
        _, exists = self._attempt("bucket_exists", lambda s: s.bucket_exists(bucket))
        return bool(exists)

    def create_bucket(self, bucket: str, provider: StorageProvider) -> None:
        self._attempt("create_bucket", lambda s: s.create_bucket(bucket, provider))

    def create_object(
        self,
        bucket: str,
        name: str,
        payload_size: int,
        checksums: list[bytes],
        content_type: str = "application/json",
    ) -> None:
        store, _ = self._attempt(
            "create_object",
            lambda s: s.create_object(bucket, name, payload_size, checksums, content_type),
        )
        self._routes[(bucket, name)] = store

    def upload_object(self, bucket: str, name: str, body: bytes) -> None:
        store = self._routes.pop((bucket, name), self.primary)
        store.upload_object(bucket, name, body)

    def list_objects(self, bucket: str) -> list[str]:
        _, names = self._attempt("list_objects", lambda s: s.list_objects(bucket))
        return list(names)


def build_object_store(
    providers: Sequence[dict[str, str]],
    *,
    access_key: str,
    secret_key: str,
    secure: bool = True,
) -> ObjectStore:
    """
    MinIO store over the configured providers. With more than one provider
    the second becomes an explicit fallback gateway.
    """
    parsed = [StorageProvider.from_dict(p) for p in providers]
    primary = MinioObjectStore(parsed, access_key=access_key, secret_key=secret_key, secure=secure)
    alternates = [p for p in parsed if p != select_primary_provider(parsed)]
    if not alternates:
        return primary
    fallback = MinioObjectStore(
        [alternates[0]], access_key=access_key, secret_key=secret_key, secure=secure,
    )
    return FallbackObjectStore(primary, fallback)
