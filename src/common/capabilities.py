from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Optional, Set, Union


Principal = Union[int, str]
Grants = Dict[Principal, Set[str]]

ALL_CAPABILITIES = "*"


@dataclass(frozen=True)
class ContentCapabilities:
    publish: str
    edit_others: str


def capabilities_for(content_type: str) -> ContentCapabilities:
    """Capability names guarding a content type, e.g. "post" -> publish_posts."""
    plural = content_type.strip().lower() or "post"
    if not plural.endswith("s"):
        plural += "s"
    return ContentCapabilities(publish=f"publish_{plural}", edit_others=f"edit_others_{plural}")


def _norm_handle(s: str) -> str:
    return s.strip().lstrip("@").lower()


def _norm_principal(p: Union[int, str]) -> Optional[Principal]:
    if isinstance(p, bool):
        return None
    if isinstance(p, int):
        return p
    if isinstance(p, str):
        s = p.strip()
        if not s:
            return None
        try:
            return int(s)
        except ValueError:
            return _norm_handle(s)
    return None


def _norm_caps(raw: object) -> Set[str]:
    if isinstance(raw, str):
        raw = raw.replace(" ", ",").split(",")
    if not isinstance(raw, (list, tuple, set)):
        return set()
    return {c.strip() for c in raw if isinstance(c, str) and c.strip()}


def parse_capability_grants(raw: Optional[str]) -> Grants:
    """Parse principal -> capabilities grants from JSON or a compact text form.

    Accepts either:
    - JSON object: '{"12345": ["publish_posts"], "@jane": "*"}'
    - Text (entries separated by ';' or newlines): "12345=publish_posts,edit_others_posts; @jane=*"

    Numeric principals become ints, handles are lowercased without '@'.
    Empty or invalid input yields an empty mapping.
    """
    if not raw or not isinstance(raw, str):
        return {}

    out: Grants = {}

    # Try JSON first
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key, caps in data.items():
            principal = _norm_principal(key)
            if principal is None:
                continue
            out.setdefault(principal, set()).update(_norm_caps(caps))
        return out

    for entry in raw.replace("\n", ";").split(";"):
        if "=" not in entry:
            continue
        key, _, caps = entry.partition("=")
        principal = _norm_principal(key)
        if principal is None:
            continue
        out.setdefault(principal, set()).update(_norm_caps(caps))
    return out


class CapabilityPolicy:
    """
    `can(principal, capability)` check backed by static grants.

    Rules:
    - No grants configured means nobody holds any capability.
    - A principal may be an int chat id, a numeric string or a handle
      (case-insensitive, with or without leading '@').
    - The "*" grant covers every capability.
    """

    def __init__(self, grants: Optional[Grants] = None) -> None:
        self._grants: Grants = {}
        for principal, caps in (grants or {}).items():
            norm = _norm_principal(principal)
            if norm is not None:
                self._grants.setdefault(norm, set()).update(_norm_caps(caps))

    @classmethod
    def from_string(cls, raw: Optional[str]) -> "CapabilityPolicy":
        return cls(parse_capability_grants(raw))

    def __call__(self, principal: Union[int, str, None], capability: str) -> bool:
        return self.can(principal, capability)

    def can(self, principal: Union[int, str, None], capability: str) -> bool:
        if principal is None:
            return False
        norm = _norm_principal(principal)
        if norm is None:
            return False
        caps = self._grants.get(norm)
        if not caps:
            return False
        return ALL_CAPABILITIES in caps or capability in caps

    def can_any(self, principals, capability: str) -> bool:
        """True if any of `principals` (e.g. chat id and username) holds it."""
        return any(self.can(p, capability) for p in principals if p is not None)
