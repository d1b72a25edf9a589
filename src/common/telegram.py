from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

import httpx

from .rate_limiter import SlidingWindowRateLimiter, RateLimitError


DEFAULT_API_BASE = "https://api.telegram.org"

_RETRY_STATUSES = (429, 500, 502, 503, 504)
_MAX_ATTEMPTS = 5


class TelegramError(RuntimeError):
    """Base error for Telegram client."""


class TelegramApiError(TelegramError):
    """API returned an error payload or unexpected structure."""


class TelegramRateLimitError(TelegramError):
    """Local rate limiting prevented the request."""


def _retry_after(resp: httpx.Response) -> Optional[float]:
    # 429 bodies carry { ok:false, parameters: { retry_after: N } }
    try:
        body = resp.json()
    except ValueError:
        return None
    params = body.get("parameters") if isinstance(body, dict) else None
    if isinstance(params, dict) and isinstance(params.get("retry_after"), (int, float)):
        return float(params["retry_after"])
    return None


class TelegramClient:
    """
    Small Telegram Bot API client for the command poller.

    Covers `getUpdates` (long polling with offsets) and `sendMessage`.
    Transient HTTP failures and 429s are retried with backoff, honoring
    `retry_after`. A local limiter caps outgoing requests per second.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
        max_per_second: int = 25,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._owns_client = client is None
        base_url = f"{api_base.rstrip('/')}/bot{token}"
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._limiter = SlidingWindowRateLimiter(max_calls=max_per_second, per_seconds=1.0)
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_updates(
        self,
        *,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        timeout: Optional[int] = None,
        allowed_updates: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {}
        if offset is not None:
            payload["offset"] = offset
        if limit is not None:
            payload["limit"] = limit
        if timeout is not None:
            payload["timeout"] = timeout
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates

        result = self._call("getUpdates", payload)
        if not isinstance(result, list):
            raise TelegramApiError("getUpdates result is not a list")
        return [u for u in result if isinstance(u, dict)]

    def send_message(
        self,
        chat_id: Union[int, str],
        text: str,
        *,
        parse_mode: Optional[str] = None,
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode is not None:
            payload["parse_mode"] = parse_mode
        if disable_notification is not None:
            payload["disable_notification"] = disable_notification
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id

        result = self._call("sendMessage", payload)
        if not isinstance(result, dict):
            raise TelegramApiError("sendMessage result is not a message object")
        return result

    # --------------- Internal ---------------
    def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        """POST `method` and unwrap the { ok, result, description } envelope."""
        data = self._post(method, payload)
        if not isinstance(data, dict) or "ok" not in data:
            raise TelegramApiError("Malformed response from Telegram Bot API")
        if data.get("ok") is True and "result" in data:
            return data["result"]
        desc = data.get("description") or "Telegram API error"
        raise TelegramApiError(f"{desc} (code={data.get('error_code')})")

    def _post(self, method: str, payload: Dict[str, Any]) -> Any:
        try:
            self._limiter.acquire(timeout=5.0)
        except RateLimitError as rl:
            raise TelegramRateLimitError("Local rate limiter prevented request") from rl

        backoff = 0.5
        last_exc: Optional[Exception] = None
        for _ in range(_MAX_ATTEMPTS):
            try:
                resp = self._client.post(f"/{method}", json=payload)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                delay = backoff
            else:
                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise TelegramApiError("Failed to parse JSON from Telegram API") from exc
                if resp.status_code not in _RETRY_STATUSES:
                    raise TelegramApiError(f"HTTP {resp.status_code} from Telegram: {resp.text[:200]}")
                retry_after = _retry_after(resp)
                delay = retry_after if retry_after is not None else backoff
            self._sleep(min(delay, 10.0))
            backoff = min(backoff * 2, 8.0)

        if last_exc is not None:
            raise TelegramError("Failed request after retries") from last_exc
        raise TelegramError("Failed request after retries (retryable HTTP status)")


__all__ = [
    "TelegramClient",
    "TelegramError",
    "TelegramApiError",
    "TelegramRateLimitError",
]
