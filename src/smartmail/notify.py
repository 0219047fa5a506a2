"""Mailbox notifications.

Messages are composed here and delivered through the Threema Gateway in
end-to-end mode: the recipient's public key is looked up through the
gateway, the text is encrypted locally with the sender's private key, and
only the encrypted box leaves this process.
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol

import aiohttp
from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as random_bytes

from smartmail.config import SmartmailConfig
from smartmail.exceptions import SmartmailGatewayError
from smartmail.state.events import TransitionEvent, TransitionKind

_logger = logging.getLogger(__name__)

_HEADLINES: dict[TransitionKind, str] = {
    TransitionKind.BECAME_FULL: "\U0001f4ec Mailbox is full!",
    TransitionKind.BECAME_EMPTY: "\U0001f4ed Mailbox was emptied.",
}

# Gateway status codes, see the Threema Gateway API documentation.
_GATEWAY_ERRORS: dict[int, str] = {
    400: "invalid recipient identity or sender identity not set up for end-to-end mode",
    401: "API identity or secret incorrect",
    402: "no credits remaining",
    404: "recipient identity not found",
    413: "message too long",
    500: "temporary internal server error",
}

_PRIVATE_KEY_PREFIX = "private:"
_TEXT_MESSAGE_TYPE = 0x01
_MIN_PADDED_LENGTH = 32


def _format_stat(value: float) -> str:
    return f"{value:g}"


def compose_message(
    event: TransitionEvent,
    *,
    voltage: float | None = None,
    temperature: float | None = None,
) -> str:
    """Render the text sent to recipients for *event*.

    Sensor stats are appended only when both voltage and temperature are known.
    """
    msg = (
        f"{_HEADLINES[event.kind]} Distance changed from "
        f"{event.previous_cm:.1f}cm to {event.current_cm:.1f}cm."
    )
    if voltage is not None and temperature is not None:
        msg += f" (_Voltage: {_format_stat(voltage)}V, temperature: {_format_stat(temperature)}°C._)"
    return msg


def load_private_key(value: str) -> PrivateKey:
    """Parse a gateway private key (``private:<64 hex chars>`` or bare hex).

    Raises
    ------
    SmartmailGatewayError
        The key is not 32 hex-encoded bytes.
    """
    text = value.strip()
    if text.startswith(_PRIVATE_KEY_PREFIX):
        text = text[len(_PRIVATE_KEY_PREFIX) :]
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise SmartmailGatewayError("Private key is not valid hex") from exc
    if len(raw) != PrivateKey.SIZE:
        raise SmartmailGatewayError(f"Private key must be {PrivateKey.SIZE} bytes, got {len(raw)}")
    return PrivateKey(raw)


def pad_text_message(text: str) -> bytes:
    """Frame *text* as a Threema text message with random PKCS#7-style padding."""
    data = bytes([_TEXT_MESSAGE_TYPE]) + text.encode("utf-8")
    padding = secrets.randbelow(255) + 1
    if len(data) + padding < _MIN_PADDED_LENGTH:
        padding = _MIN_PADDED_LENGTH - len(data)
    return data + bytes([padding]) * padding


class Notifier(Protocol):
    async def send(self, recipient: str, text: str) -> str:
        ...


class ThreemaGateway:
    """Minimal async Threema Gateway client (end-to-end mode).

    Public keys are cached per recipient for the lifetime of the client.
    """

    def __init__(self, config: SmartmailConfig, http_session: aiohttp.ClientSession) -> None:
        self._identity = config.threema_from
        self._secret = config.threema_secret
        self._api_url = config.threema_api_url
        self._private_key = load_private_key(config.threema_private_key)
        self._http = http_session
        self._public_keys: dict[str, PublicKey] = {}

    def _error(self, status: int, recipient: str = "", action: str = "") -> SmartmailGatewayError:
        reason = _GATEWAY_ERRORS.get(status, "unexpected response")
        target = f" for {recipient}" if recipient else ""
        prefix = f"{action}: " if action else ""
        return SmartmailGatewayError(
            f"{prefix}Threema Gateway returned HTTP {status}{target}: {reason}",
            status_code=status,
            recipient=recipient,
        )

    @property
    def _auth(self) -> dict[str, str]:
        return {"from": self._identity, "secret": self._secret}

    async def lookup_public_key(self, recipient: str) -> PublicKey:
        """Return the public key of *recipient*, asking the gateway on first use.

        Raises
        ------
        SmartmailGatewayError
            The lookup failed or the gateway returned an unusable key.
        """
        cached = self._public_keys.get(recipient)
        if cached is not None:
            return cached

        action = f"Could not look up public key for {recipient}"
        try:
            async with self._http.get(f"{self._api_url}/pubkeys/{recipient}", params=self._auth) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise self._error(resp.status, recipient, action)
        except SmartmailGatewayError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise SmartmailGatewayError(f"{action}: {exc}", recipient=recipient) from exc

        try:
            public_key = PublicKey(bytes.fromhex(body.strip()))
        except (ValueError, CryptoError) as exc:
            raise SmartmailGatewayError(
                f"Could not process public key for {recipient}: {exc}",
                recipient=recipient,
            ) from exc
        self._public_keys[recipient] = public_key
        return public_key

    def encrypt(self, text: str, public_key: PublicKey) -> tuple[bytes, bytes]:
        """Encrypt *text* for *public_key* and return ``(nonce, box)``."""
        nonce = random_bytes(Box.NONCE_SIZE)
        encrypted = Box(self._private_key, public_key).encrypt(pad_text_message(text), nonce)
        return nonce, encrypted.ciphertext

    async def send(self, recipient: str, text: str) -> str:
        """Encrypt *text* for *recipient*, send it, and return the gateway message id.

        Raises
        ------
        SmartmailGatewayError
            The key lookup failed, or the gateway refused the message or could
            not be reached.
        """
        public_key = await self.lookup_public_key(recipient)
        nonce, box = self.encrypt(text, public_key)
        form = {
            **self._auth,
            "to": recipient,
            "nonce": nonce.hex(),
            "box": box.hex(),
        }
        try:
            async with self._http.post(f"{self._api_url}/send_e2e", data=form) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise self._error(resp.status, recipient)
        except SmartmailGatewayError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise SmartmailGatewayError(
                f"Could not send message to {recipient}: {exc}",
                recipient=recipient,
            ) from exc

        message_id = body.strip()
        _logger.debug("Sent Threema message to %s (%s)", recipient, message_id)
        return message_id

    async def check_credits(self) -> int:
        """Return the remaining message credits, validating the credentials."""
        try:
            async with self._http.get(f"{self._api_url}/credits", params=self._auth) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise self._error(resp.status)
        except SmartmailGatewayError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise SmartmailGatewayError(f"Could not reach Threema Gateway: {exc}") from exc

        try:
            return int(body.strip())
        except ValueError as exc:
            raise SmartmailGatewayError(f"Unexpected credits response: {body[:64]!r}") from exc
