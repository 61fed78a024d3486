"""
S3Store — AWS S3 adapter using aioboto3 and If-Match conditional writes.

Install extras: pip install "docqueue[s3]"

Object storage has no find-and-modify, so this adapter emulates one with an
optimistic compare-and-set loop over a single JSON object holding every
document (see core/codec.py):

  1. GetObject → (content, ETag)
  2. apply one pure StoreState transition in memory
  3. PutObject with IfMatch=ETag (IfNoneMatch="*" when the object is absent)
  4. on PreconditionFailed → CASConflictError → re-read and retry

Two workers racing to claim the same item both compute a lease, but only one
conditional put succeeds; the loser re-reads and leases a different item or
finds none. The removal of an exhausted item is part of the same write.

Operations retry up to `max_retries` times (default 10) with linear back-off
(10ms × attempt). When all retries are spent the conflict surfaces as a
StoreFault.

Compatible with S3-compatible storage that supports conditional writes:
  MinIO, Cloudflare R2, Tigris, etc.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING, Callable, TypeVar

from pydantic import ValidationError

from docqueue.core import codec
from docqueue.domain.errors import CASConflictError, StoreFault
from docqueue.domain.models import StoreState, new_item_id
from docqueue.ports.store import Document

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session

T = TypeVar("T")

Transition = Callable[[StoreState], tuple[StoreState, T]]

_CONFLICT_CODES = ("PreconditionFailed", "ConditionalRequestConflict")


@dataclasses.dataclass
class S3Store:
    """
    AWS S3 document store.

    Parameters
    ----------
    bucket       : S3 bucket name
    key          : object key (e.g. "queues/state.json")
    session      : aioboto3.Session — created lazily from env vars if omitted
    region_name  : AWS region passed to the S3 client
    endpoint_url : custom endpoint for S3-compatible backends (e.g. MinIO)
    max_retries  : CAS attempts per operation
    """

    bucket: str
    key: str
    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None
    max_retries: int = 10

    async def __aenter__(self) -> "S3Store":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _get_session(self) -> AioBoto3Session:
        if self.session is not None:
            return self.session
        try:
            import aioboto3  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "S3Store requires aioboto3. Install with: pip install 'docqueue[s3]'"
            ) from exc
        self.session = aioboto3.Session()
        return self.session  # type: ignore[return-value]

    def _client_kwargs(self) -> dict[str, str]:
        """Build kwargs forwarded to the S3 client constructor."""
        kwargs: dict[str, str] = {}
        if self.region_name:
            kwargs["region_name"] = self.region_name
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return kwargs

    # ------------------------------------------------------------------ #
    # Port implementation                                                  #
    # ------------------------------------------------------------------ #

    async def ensure_schema(self) -> None:
        """Write an empty collection object if none exists yet."""
        await self._mutate(lambda state: (state, None), write_if_absent=True)

    async def insert(self, document: Document) -> str:
        item = codec.to_item(document, new_item_id())
        await self._mutate(lambda state: (state.with_item_added(item), None))
        return item.id

    async def claim(
        self,
        queue_type: str,
        now: datetime,
        visible_until: datetime,
    ) -> Document | None:
        leased = await self._mutate(
            lambda state: state.with_lease(queue_type, now, visible_until)
        )
        return leased.to_document() if leased is not None else None

    async def delete(self, item_id: str) -> int:
        return await self._mutate(lambda state: state.with_item_removed(item_id))

    async def delete_queue(self, queue_type: str) -> int:
        return await self._mutate(lambda state: state.without_queue(queue_type))

    async def count(self, queue_type: str) -> int:
        content, _ = await self._read()
        return len(self._decode(content).of_type(queue_type))

    async def close(self) -> None:
        """Clients are opened per call; only the session reference is dropped."""
        self.session = None

    # ------------------------------------------------------------------ #
    # Internal CAS loop                                                   #
    # ------------------------------------------------------------------ #

    async def _mutate(self, transition: Transition[T], write_if_absent: bool = False) -> T:
        """
        Read-modify-write with CAS retry loop.

        Skips the write when the transition leaves the state unchanged.
        """
        for attempt in range(self.max_retries):
            content, etag = await self._read()
            state = self._decode(content)
            new_state, result = transition(state)
            if new_state is state and not (write_if_absent and etag is None):
                return result
            try:
                await self._write(codec.encode(new_state), if_match=etag)
                return result
            except CASConflictError as exc:
                if attempt == self.max_retries - 1:
                    raise StoreFault(
                        f"S3 write lost {self.max_retries} CAS races", exc
                    ) from exc
                await asyncio.sleep(0.01 * (attempt + 1))
        raise StoreFault("S3 write not attempted", ValueError(f"max_retries={self.max_retries}"))

    def _decode(self, content: bytes) -> StoreState:
        try:
            return codec.decode(content)
        except (ValueError, ValidationError) as exc:
            raise StoreFault("S3 object is not a valid queue state", exc) from exc

    async def _read(self) -> tuple[bytes, str | None]:
        """Read the state object. Returns (b"", None) if the key does not exist."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                try:
                    response = await s3.get_object(Bucket=self.bucket, Key=self.key)
                    content: bytes = await response["Body"].read()
                    etag: str = response["ETag"]
                    return content, etag
                except Exception as exc:
                    if _s3_error_code(exc) in ("NoSuchKey", "404"):
                        return b"", None
                    raise
        except Exception as exc:
            raise StoreFault("S3 read failed", exc) from exc

    async def _write(self, content: bytes, if_match: str | None) -> str:
        """Conditional put. Raises CASConflictError when the object moved on."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                put_kwargs: dict[str, str | bytes] = {
                    "Bucket": self.bucket,
                    "Key": self.key,
                    "Body": content,
                    "ContentType": "application/json",
                }
                if if_match is not None:
                    put_kwargs["IfMatch"] = if_match
                else:
                    put_kwargs["IfNoneMatch"] = "*"

                try:
                    response = await s3.put_object(**put_kwargs)
                    return str(response["ETag"])
                except Exception as exc:
                    if _s3_error_code(exc) in _CONFLICT_CODES:
                        raise CASConflictError(
                            f"S3 conditional write rejected ({_s3_error_code(exc)})"
                        ) from exc
                    raise
        except CASConflictError:
            raise
        except Exception as exc:
            raise StoreFault("S3 write failed", exc) from exc


def _s3_error_code(exc: Exception) -> str:
    """Extract the error code from a botocore ClientError, or return ''."""
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        error = response.get("Error", {})
        if isinstance(error, dict):
            code = error.get("Code", "")
            return str(code) if code else ""
    return ""
