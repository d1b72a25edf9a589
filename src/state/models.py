from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Options(BaseModel):
    """
    Shared key/value configuration document owned by the host.

    Fields
    - values: option name -> JSON-compatible value. The featured list lives
      under `stucky_posts` as a JSON array of integer ids; the command poller
      keeps its Telegram offset under `stucky_poller_offset`.

    Notes
    - The whole document is serialized as deterministic JSON and, when stored
      in S3, encrypted with Fernet (see `state.s3_store`).
    - Values are opaque to this model. Consumers validate the shape of the
      value they read and treat anything unexpected as absent.
    """

    values: Dict[str, Any] = Field(
        default_factory=dict,
        description="Option name to JSON value",
    )

    @classmethod
    def empty(cls) -> "Options":
        """Convenience constructor for a fresh, empty document."""
        return cls()

    def get(self, key: str) -> Optional[Any]:
        return self.values.get(key)
