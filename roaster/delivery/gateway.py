"""HTTP client for the chat gateway that fronts the messaging platform.

The gateway exposes two endpoints used here:

- ``POST {base}/chats/{group_id}/voice`` -- multipart upload of an
  OGG/Opus voice note sent as a reply to ``reply_to``; answers
  ``{"ok": true, "message_id": "..."}`` on success
- ``GET {base}/chats/{group_id}/administrators`` -- answers
  ``{"ok": true, "administrators": [{"user_id": "..."}]}``

Uploads are signed with HMAC-SHA256 over the audio bytes when a secret is
configured (``X-Roaster-Signature: sha256=<hex>``).
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

import httpx

from roaster.models import DeliveryReceipt, RoastRequest

logger = logging.getLogger(__name__)


class GatewayClient:
    """Implements both delivery and admin lookup over HTTP."""

    def __init__(
        self,
        base_url: str,
        secret: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    @staticmethod
    def compute_signature(payload: bytes, secret: str) -> str:
        """Compute HMAC-SHA256 signature for a payload."""
        mac = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256)
        return f"sha256={mac.hexdigest()}"

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def deliver(self, payload: bytes, request: RoastRequest) -> DeliveryReceipt:
        headers: dict[str, str] = {"X-Roaster-Event": "roast.voice"}
        if self.secret:
            headers["X-Roaster-Signature"] = self.compute_signature(payload, self.secret)

        try:
            with self._client() as client:
                resp = client.post(
                    f"/chats/{request.group_id}/voice",
                    data={
                        "reply_to": request.reply_to_message_id,
                        "target_user_id": request.target_id,
                        "issuer_user_id": request.issuer_id,
                    },
                    files={"voice": ("roast.ogg", payload, "audio/ogg")},
                    headers=headers,
                )
        except httpx.RequestError as exc:
            logger.warning("Voice delivery to group %s failed: %s", request.group_id, exc)
            return DeliveryReceipt(delivered=False, detail=str(exc)[:500])

        if not resp.is_success:
            logger.warning(
                "Gateway rejected voice delivery to group %s: %s", request.group_id, resp.status_code
            )
            return DeliveryReceipt(delivered=False, detail=f"HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError:
            return DeliveryReceipt(delivered=False, detail="Malformed gateway response")

        if not body.get("ok"):
            return DeliveryReceipt(delivered=False, detail=str(body.get("description", ""))[:500])
        return DeliveryReceipt(delivered=True, message_id=str(body.get("message_id", "")))

    # ------------------------------------------------------------------
    # Admin lookup
    # ------------------------------------------------------------------

    def is_admin(self, group_id: str, user_id: str) -> bool:
        """Return True if *user_id* administers *group_id*.

        Lookup failures count as "not an admin".
        """
        try:
            with self._client() as client:
                resp = client.get(f"/chats/{group_id}/administrators")
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error checking admin status in group %s: %s", group_id, exc)
            return False

        admins = body.get("administrators", []) if body.get("ok") else []
        return any(str(a.get("user_id")) == str(user_id) for a in admins)
