from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional, Tuple
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .models import Options


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_BUCKET = "STUCKY_STATE_BUCKET"
ENV_KEY = "STUCKY_STATE_KEY"
ENV_FERNET_KEY = "STUCKY_FERNET_KEY"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _dump_options_json(options: Options) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(
        options.model_dump(), separators=(",", ":"), sort_keys=True
    ).encode("utf-8")


def _load_options_json(data: bytes) -> Options:
    raw = json.loads(data.decode("utf-8"))
    return Options.model_validate(raw)


class OptimisticLockError(Exception):
    """Raised when an ETag precondition fails during a conditional write."""


@dataclass
class S3ObjectRef:
    bucket: str
    key: str


class S3OptionStore:
    """
    S3-backed option document, encrypted at rest using Fernet.

    Document level
    - `read()` returns `(options, etag)`; a missing object yields
      `(Options.empty(), None)`.
    - `write(options, if_match=None)` stores the encrypted document and returns
      the new ETag. With `if_match`, the write only lands if the current ETag
      still matches (copy-based compare-and-swap).

    Option level (host contract)
    - `get(key)` returns the stored value or None. Unreadable documents and
      S3 read errors are logged and treated as empty.
    - `set(key, value)` re-reads the document and returns False when the value
      is unchanged. Otherwise it writes with the observed ETag as precondition.
      A failed read or write is logged and reported as False; an unreadable
      document is never overwritten.

    Environment variables (optional)
    - `STUCKY_STATE_BUCKET`: S3 bucket for the options object
    - `STUCKY_STATE_KEY`:    S3 key (path) for the options object
    - `STUCKY_FERNET_KEY`:   urlsafe base64-encoded key for Fernet
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        key: str,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._obj = S3ObjectRef(bucket=bucket, key=key)
        self._fernet = _to_fernet(fernet_key)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "S3OptionStore":
        bucket = os.environ.get(ENV_BUCKET)
        key = os.environ.get(ENV_KEY)
        fkey = os.environ.get(ENV_FERNET_KEY)
        if not bucket or not key or not fkey:
            missing = [
                name for name, val in [(ENV_BUCKET, bucket), (ENV_KEY, key), (ENV_FERNET_KEY, fkey)] if not val
            ]
            raise RuntimeError(
                f"Missing required environment variables for S3 option store: {', '.join(missing)}"
            )
        return cls(bucket=bucket, key=key, fernet_key=fkey)

    # -------- Document operations --------
    def read(self) -> Tuple[Options, Optional[str]]:
        """Read and decrypt the options document.

        Raises:
        - ValueError if decryption fails or content is invalid JSON.
        - botocore.exceptions.ClientError for other S3 issues.
        """
        try:
            resp = self._s3.get_object(Bucket=self._obj.bucket, Key=self._obj.key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return (Options.empty(), None)
            raise

        body = resp["Body"].read()
        etag = resp.get("ETag")
        try:
            decrypted = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise ValueError("Failed to decrypt options: invalid Fernet token") from ex

        try:
            options = _load_options_json(decrypted)
        except Exception as ex:
            raise ValueError("Failed to parse decrypted options JSON") from ex

        return (options, etag)

    def write(self, options: Options, *, if_match: Optional[str] = None) -> str:
        """Encrypt and write the document; returns the new ETag.

        Raises OptimisticLockError when `if_match` no longer matches.
        """
        ciphertext = self._fernet.encrypt(_dump_options_json(options))

        if if_match is None:
            resp = self._s3.put_object(
                Bucket=self._obj.bucket,
                Key=self._obj.key,
                Body=ciphertext,
                ContentType="application/octet-stream",
            )
            return str(resp.get("ETag"))

        # PutObject has no If-Match; stage under a temp key, then COPY over the
        # destination with the precondition.
        temp_key = f"{self._obj.key}.tmp-{uuid4().hex}"
        self._s3.put_object(
            Bucket=self._obj.bucket,
            Key=temp_key,
            Body=ciphertext,
            ContentType="application/octet-stream",
        )

        try:
            resp = self._s3.copy_object(
                Bucket=self._obj.bucket,
                Key=self._obj.key,
                CopySource={"Bucket": self._obj.bucket, "Key": temp_key},
                IfMatch=if_match,
                MetadataDirective="COPY",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("PreconditionFailed", "412"):
                raise OptimisticLockError(
                    f"ETag mismatch for s3://{self._obj.bucket}/{self._obj.key}"
                ) from e
            raise
        finally:
            try:
                self._s3.delete_object(Bucket=self._obj.bucket, Key=temp_key)
            except ClientError:
                logger.warning("Could not delete temp object %s", temp_key)

        return str(resp.get("ETag"))

    # -------- Option operations --------
    def get(self, key: str) -> Optional[Any]:
        try:
            options, _ = self.read()
        except (ValueError, ClientError) as ex:
            logger.warning("Unreadable options document, treating as empty: %s", ex)
            return None
        return options.get(key)

    def set(self, key: str, value: Any) -> bool:
        try:
            options, etag = self.read()
        except (ValueError, ClientError) as ex:
            # Never overwrite a document that could not be read.
            logger.warning("Unreadable options document, not writing %s: %s", key, ex)
            return False

        if key in options.values and options.values[key] == value:
            logger.debug("Option %s unchanged; skipping write", key)
            return False

        options.values[key] = value
        try:
            self.write(options, if_match=etag)
        except (OptimisticLockError, ClientError) as ex:
            logger.warning("Write of option %s failed: %s", key, ex)
            return False
        return True
