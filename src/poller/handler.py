from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

from common.capabilities import CapabilityPolicy, capabilities_for
from common.telegram import TelegramClient, TelegramError
from state.s3_store import S3OptionStore
from stucky.store import StickyStore, absint


logger = logging.getLogger(__name__)

ENV_STATE_BUCKET = "STATE_BUCKET"
ENV_STATE_KEY = "STATE_KEY"  # optional; defaults to "options.json"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

FALLBACK_ENV_STATE_BUCKET = "STUCKY_STATE_BUCKET"
FALLBACK_ENV_STATE_KEY = "STUCKY_STATE_KEY"
FALLBACK_ENV_PARAM_PREFIX = "STUCKY_PARAM_PREFIX"

OFFSET_OPTION_KEY = "stucky_poller_offset"

# Commands act on the default content type.
_CAPS = capabilities_for("post")

_STICK_RE = re.compile(r"^\s*/stick\s+(\d{1,18})\s*$", re.IGNORECASE)
_UNSTICK_RE = re.compile(r"^\s*/unstick\s+(\d{1,18})\s*$", re.IGNORECASE)
_STICKY_RE = re.compile(r"^\s*/sticky\s+(\d{1,18})\s*$", re.IGNORECASE)
_LIST_RE = re.compile(r"^\s*/list\s*$", re.IGNORECASE)


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _load_ssm_params(prefix: str, names: list[str]) -> Dict[str, Optional[str]]:
    import boto3
    from botocore.exceptions import ClientError

    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        try:
            resp = ssm.get_parameter(Name=f"{prefix}{name}", WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def _match_id(pattern: re.Pattern, text: str) -> Optional[int]:
    m = pattern.match(text or "")
    if not m:
        return None
    return absint(m.group(1))


def _sender(chat: Dict[str, Any]) -> List[Any]:
    """Principals a chat may be granted capabilities under: id and username."""
    return [chat.get("id"), chat.get("username")]


def _handle_command(
    text: str, principals: List[Any], policy: CapabilityPolicy, stickies: StickyStore
) -> Optional[str]:
    """Apply one command; returns the acknowledgement, or None if nothing applies."""
    can_publish = policy.can_any(principals, _CAPS.publish)
    can_edit = can_publish and policy.can_any(principals, _CAPS.edit_others)

    item_id = _match_id(_STICK_RE, text)
    if item_id is not None:
        if not can_edit:
            return None
        if stickies.stick(item_id):
            return f"📌 Featured: {item_id}"
        return f"Already featured: {item_id}"

    item_id = _match_id(_UNSTICK_RE, text)
    if item_id is not None:
        if not can_edit:
            return None
        if stickies.unstick(item_id):
            return f"✅ Unfeatured: {item_id}"
        return f"Not featured: {item_id}"

    item_id = _match_id(_STICKY_RE, text)
    if item_id is not None:
        if not can_publish:
            return None
        return f"{item_id} is {'featured' if stickies.is_sticky(item_id) else 'not featured'}"

    if _LIST_RE.match(text or ""):
        if not can_publish:
            return None
        return _format_list_response(stickies.get_stickies())

    return None


def _format_list_response(ids: List[Any]) -> str:
    if not ids:
        return "No featured content."
    return f"Featured ({len(ids)}): " + ", ".join(str(i) for i in ids)


def _max_update_id(updates: list[dict]) -> Optional[int]:
    max_id: Optional[int] = None
    for upd in updates:
        try:
            uid = int(upd.get("update_id"))
        except (TypeError, ValueError):
            continue
        max_id = uid if max_id is None else max(max_id, uid)
    return max_id


def _iter_commands(updates: list[dict]):
    for upd in updates:
        msg = upd.get("message") if isinstance(upd, dict) else None
        if not isinstance(msg, dict):
            continue
        text = msg.get("text")
        chat = msg.get("chat")
        if not isinstance(text, str) or not isinstance(chat, dict) or chat.get("id") is None:
            continue
        yield chat, text


def run_once(*, allowed_updates: Optional[list[str]] = None, limit: int = 100, timeout: int = 0) -> Dict[str, Any]:
    """
    Poll Telegram getUpdates once and apply featured-content commands.

    - Resolves state bucket/key and SSM prefix from env, with fallbacks.
    - Loads the bot token, Fernet key and capability grants from SSM.
    - Calls getUpdates from the offset stored under `stucky_poller_offset`.
    - Applies /stick ID, /unstick ID, /sticky ID and /list for senders holding
      the post capabilities; other senders are ignored without a reply.
    - Persists the new offset.

    Returns: {"ok": True, "received": N, "new_last_update_id": int|None}.
    """
    bucket = _getenv(ENV_STATE_BUCKET) or _getenv(FALLBACK_ENV_STATE_BUCKET)
    key = _getenv(ENV_STATE_KEY) or _getenv(FALLBACK_ENV_STATE_KEY, "options.json")
    prefix = _getenv(ENV_PARAM_PREFIX) or _getenv(FALLBACK_ENV_PARAM_PREFIX)

    bucket = _require(bucket, ENV_STATE_BUCKET)
    prefix = _require(prefix, ENV_PARAM_PREFIX)

    params = _load_ssm_params(prefix, ["telegram_bot_token", "fernet_key", "capability_grants"])
    token = _require(params.get("telegram_bot_token"), f"{prefix}telegram_bot_token")
    fernet_key = _require(params.get("fernet_key"), f"{prefix}fernet_key")
    policy = CapabilityPolicy.from_string(params.get("capability_grants"))

    options = S3OptionStore(bucket=bucket, key=key, fernet_key=fernet_key)
    stickies = StickyStore(options)

    last_update_id = options.get(OFFSET_OPTION_KEY)
    if not isinstance(last_update_id, int) or isinstance(last_update_id, bool):
        last_update_id = None
    offset = last_update_id + 1 if last_update_id is not None else None

    with TelegramClient(token) as tg:
        try:
            updates = tg.get_updates(offset=offset, limit=limit, timeout=timeout, allowed_updates=allowed_updates)
        except TelegramError as e:
            raise RuntimeError(f"Telegram getUpdates failed: {e}") from e

        acks: List[Tuple[Any, str]] = []
        for chat, text in _iter_commands(updates):
            ack = _handle_command(text, _sender(chat), policy, stickies)
            if ack is None:
                continue
            acks.append((chat["id"], ack))

        for chat_id, ack in acks:
            try:
                tg.send_message(chat_id=chat_id, text=ack)
            except TelegramError as e:
                logger.warning("Failed to acknowledge chat %s: %s", chat_id, e)

    new_last = _max_update_id(updates)
    if new_last is not None and (last_update_id is None or new_last > last_update_id):
        if not options.set(OFFSET_OPTION_KEY, new_last):
            logger.warning("Offset %s was not persisted; updates may be redelivered", new_last)
        last_update_id = new_last

    return {"ok": True, "received": len(updates), "new_last_update_id": last_update_id}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry for scheduled Telegram command polling.

    Environment:
    - STATE_BUCKET, STATE_KEY (default: options.json), PARAM_PREFIX
    - Fallbacks: STUCKY_STATE_BUCKET, STUCKY_STATE_KEY, STUCKY_PARAM_PREFIX
    - SSM under PARAM_PREFIX: telegram_bot_token, fernet_key, capability_grants
    """
    return run_once(allowed_updates=["message"], limit=100, timeout=0)
