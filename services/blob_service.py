# services/blob_service.py
import os
import time
import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional
from urllib.parse import urlsplit, urlunsplit

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from services.errors import Conflict, StoreUnavailable

logger = logging.getLogger(__name__)

LOCK_BLOB_NAME = ".lock"

# ────────────────────────────────────────────────────────────
# Config
# ────────────────────────────────────────────────────────────
def _setting(*keys: str) -> Optional[str]:
    """First non-blank environment value among keys."""
    for k in keys:
        v = os.environ.get(k)
        if v and v.strip():
            return v.strip()
    return None


def _int_setting(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, default))
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer %s=%r", key, os.environ.get(key))
        return default


def base_url_setting() -> Optional[str]:
    return _setting("BlobBaseURL", "Blob_URL")


def extract_container_name(url: Optional[str]) -> Optional[str]:
    """
    https://acct.blob.core.windows.net/invpics/units -> 'invpics'
    """
    if not url:
        return None
    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    segments = [s for s in path.split("/") if s]
    return segments[0] if segments else None


def resolve_path_prefix(explicit: Optional[str], base_url: Optional[str]) -> str:
    """
    Namespace prefix shared by every collection, always '' or ending in '/'.
    Explicit override wins; otherwise whatever the base URL carries after the
    container segment.
    """
    if explicit is not None and explicit.strip():
        prefix = explicit.strip().strip("/")
        return f"{prefix}/" if prefix else ""

    if not base_url:
        return ""
    try:
        path = urlsplit(base_url).path
    except ValueError:
        return ""
    segments = [s for s in path.split("/") if s]
    if len(segments) <= 1:
        return ""
    return "/".join(segments[1:]) + "/"


# ────────────────────────────────────────────────────────────
# Error translation
# ────────────────────────────────────────────────────────────
@contextmanager
def _store_errors(action: str, listing: bool = False):
    """
    Connectivity, credential and missing-container failures become
    StoreUnavailable. A missing blob stays ResourceNotFoundError for the caller.
    """
    try:
        yield
    except (ServiceRequestError, ServiceResponseError, ClientAuthenticationError) as e:
        logger.error("Blob storage unreachable during %s: %s", action, e)
        raise StoreUnavailable(f"Blob storage unavailable ({action})") from e
    except HttpResponseError as e:
        if e.status_code in (401, 403):
            logger.error("Blob storage rejected credentials during %s: %s", action, e)
            raise StoreUnavailable(f"Blob storage access denied ({action})") from e
        if isinstance(e, ResourceNotFoundError) and (
            listing or getattr(e, "error_code", None) == "ContainerNotFound"
        ):
            logger.error("Blob container missing during %s: %s", action, e)
            raise StoreUnavailable(f"Blob container not found ({action})") from e
        raise


# ────────────────────────────────────────────────────────────
# Adapter
# ────────────────────────────────────────────────────────────
class CollectionLock:
    """Held lease on a collection's lock blob."""

    def __init__(self, lease, namespace: str):
        self._lease = lease
        self.namespace = namespace

    def renew(self) -> None:
        with _store_errors("lock renew"):
            self._lease.renew()

    def release(self) -> None:
        try:
            with _store_errors("lock release"):
                self._lease.release()
        except Exception:
            # the lease expires on its own
            logger.warning("Failed to release lock for %s", self.namespace, exc_info=True)


class BlobStore:
    """
    Azure container wrapped with the image namespace layout:
        <path-prefix><natural-key>/<filename>

    All paths passed to exists/download/upload/delete are full blob paths.
    """

    def __init__(
        self,
        container: ContainerClient,
        path_prefix: str = "",
        base_url: Optional[str] = None,
        lease_seconds: int = 60,
        lock_wait_seconds: float = 20,
    ):
        self.container = container
        self.path_prefix = path_prefix
        self.base_url = base_url
        # Azure only accepts finite leases of 15..60 seconds
        self.lease_seconds = min(max(lease_seconds, 15), 60)
        self.lock_wait_seconds = lock_wait_seconds

    def namespace(self, natural_key: str) -> str:
        return f"{self.path_prefix}{natural_key.strip()}/"

    def list(self, namespace: str) -> Iterator[str]:
        """
        Lazily yield blob names under namespace, relative to it.
        Single pass; materialize before mutating the namespace.
        """
        with _store_errors("list", listing=True):
            for name in self.container.list_blob_names(name_starts_with=namespace):
                rel = name[len(namespace):]
                if rel:
                    yield rel

    def exists(self, path: str) -> bool:
        with _store_errors("exists"):
            return bool(self.container.get_blob_client(path).exists())

    def get_content_type(self, path: str) -> Optional[str]:
        try:
            with _store_errors("get properties"):
                props = self.container.get_blob_client(path).get_blob_properties()
        except ResourceNotFoundError:
            return None
        settings = getattr(props, "content_settings", None)
        return getattr(settings, "content_type", None)

    def download(self, path: str) -> Optional[bytes]:
        try:
            with _store_errors("download"):
                return self.container.get_blob_client(path).download_blob().readall()
        except ResourceNotFoundError:
            return None

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str],
        overwrite: bool = False,
    ) -> None:
        settings = ContentSettings(content_type=content_type) if content_type else None
        try:
            with _store_errors("upload"):
                self.container.get_blob_client(path).upload_blob(
                    data,
                    overwrite=overwrite,
                    content_settings=settings,
                )
        except ResourceExistsError as e:
            raise Conflict(f"Blob '{path}' already exists") from e

    def delete(self, path: str) -> bool:
        """False when the blob was already gone."""
        try:
            with _store_errors("delete"):
                self.container.delete_blob(path, delete_snapshots="include")
        except ResourceNotFoundError:
            return False
        return True

    def public_url(self, natural_key: str, filename: str) -> str:
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{natural_key.strip()}/{filename}"
        # drop any SAS query carried by the container URL
        parts = urlsplit(self.container.url)
        container_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        return f"{container_url.rstrip('/')}/{self.namespace(natural_key)}{filename}"

    @contextmanager
    def lock(self, namespace: str) -> Iterator[CollectionLock]:
        """
        Advisory per-collection lock: a lease on '<namespace>.lock'.
        Raises Conflict when the lease stays taken past lock_wait_seconds.
        """
        blob = self.container.get_blob_client(namespace + LOCK_BLOB_NAME)
        try:
            with _store_errors("lock create"):
                blob.upload_blob(b"", overwrite=False)
        except HttpResponseError as e:
            # already there (and possibly leased)
            if e.status_code not in (409, 412):
                raise

        deadline = time.monotonic() + self.lock_wait_seconds
        delay = 0.25
        while True:
            try:
                with _store_errors("lock acquire"):
                    lease = blob.acquire_lease(lease_duration=self.lease_seconds)
                break
            except HttpResponseError as e:
                if e.status_code != 409:
                    raise
                if time.monotonic() >= deadline:
                    logger.warning("Timed out waiting for image lock on %s", namespace)
                    raise Conflict("Another image operation is in progress for this unit. Retry.") from e
                time.sleep(delay)
                delay = min(delay * 2, 2.0)

        held = CollectionLock(lease, namespace)
        logger.debug("Acquired image lock on %s", namespace)
        try:
            yield held
        finally:
            held.release()


@lru_cache(maxsize=8)
def _build_store(
    conn_str: Optional[str],
    base_url: Optional[str],
    container_name: Optional[str],
    explicit_prefix: Optional[str],
    timeout: int,
    lease_seconds: int,
    lock_wait_seconds: int,
) -> Optional[BlobStore]:
    client_kwargs = {"connection_timeout": timeout, "read_timeout": timeout}
    container = None
    public_base = None
    if base_url:
        parts = urlsplit(base_url)
        # the SAS query authenticates the client only; never hand it out
        public_base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    if conn_str and container_name:
        bsc = BlobServiceClient.from_connection_string(conn_str, **client_kwargs)
        container = bsc.get_container_client(container_name)
    elif base_url:
        # anonymous access, or a SAS token carried in the URL
        container_url = urlunsplit((parts.scheme, parts.netloc, "/" + container_name, parts.query, ""))
        container = ContainerClient.from_container_url(container_url, **client_kwargs)
    if container is None:
        return None
    return BlobStore(
        container,
        path_prefix=resolve_path_prefix(explicit_prefix, public_base),
        base_url=public_base,
        lease_seconds=lease_seconds,
        lock_wait_seconds=lock_wait_seconds,
    )


def get_store() -> BlobStore:
    """BlobStore from the current app settings; StoreUnavailable when unset."""
    base_url = base_url_setting()
    container_name = (
        extract_container_name(base_url)
        or _setting("BlobContainerName", "AZURE_BLOB_CONTAINER")
    )
    conn_str = _setting("BlobConnectionString", "AZURE_BLOB_CONN_STRING")
    store = None
    if container_name:
        try:
            store = _build_store(
                conn_str,
                base_url,
                container_name,
                os.environ.get("BlobPathPrefix"),
                _int_setting("BLOB_TIMEOUT_SECONDS", 30),
                _int_setting("BLOB_LOCK_LEASE_SECONDS", 60),
                _int_setting("BLOB_LOCK_WAIT_SECONDS", 20),
            )
        except ValueError as e:
            logger.error("Invalid blob storage configuration: %s", e)
            raise StoreUnavailable("Blob storage misconfigured") from e
    if store is None:
        raise StoreUnavailable("Blob storage not configured")
    return store
