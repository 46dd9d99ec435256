"""
Message Security Handler
========================

Host boundary: the four operations a mail client calls.

Implements DecodeContract and EncodeContract.
INV-ENCODE-01: Contract errors raised while encoding are attached to the
               result, never propagated.
"""

from __future__ import annotations

import logging

from contracts import (
    DecodedMessage,
    EncodingResult,
    EncodingStatus,
    MessageSecurityError,
    OutgoingMessage,
)
from pgpmime_mcp.config import Settings
from pgpmime_mcp.decoder import GPGDecoder
from pgpmime_mcp.encoder import GPGEncoder
from pgpmime_mcp.engine import GPGEngine
from pgpmime_mcp.keys import GPGKeyStore, KeyManager
from pgpmime_mcp.mime import normalize_line_endings

logger = logging.getLogger("pgpmime-mcp.handler")


class MessageSecurityHandler:
    """Decode, verify, sign and encrypt on behalf of a host mail client."""

    def __init__(
        self,
        decoder: GPGDecoder,
        encoder: GPGEncoder,
        key_manager: KeyManager,
        settings: Settings,
    ) -> None:
        self._decoder = decoder
        self._encoder = encoder
        self._key_manager = key_manager
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> MessageSecurityHandler:
        """Wire the gpg-backed services together."""
        engine = GPGEngine(settings)
        key_manager = KeyManager(GPGKeyStore(engine))
        return cls(
            decoder=GPGDecoder(engine, key_manager, settings),
            encoder=GPGEncoder(engine, key_manager, settings),
            key_manager=key_manager,
            settings=settings,
        )

    @property
    def key_manager(self) -> KeyManager:
        return self._key_manager

    def should_handle(self, data: bytes) -> bool:
        return self._decoder.should_decode(data)

    def decode(self, data: bytes) -> DecodedMessage:
        return self._decoder.decode(data)

    def encoding_status(self, sender: str, recipients: list[str]) -> EncodingStatus:
        """
        POST-ENCODE-04: addresses_failing_encryption is empty unless at least
        one recipient can be encrypted to.
        """
        keys = self._key_manager.all_keys()
        can_sign = self._key_manager.signing_key_for(sender, keys) is not None

        can_encrypt = False
        failing: list[str] = []
        for recipient in recipients:
            if self._key_manager.encryption_key_for(recipient, keys) is not None:
                can_encrypt = True
            else:
                failing.append(recipient)
        if not can_encrypt:
            failing = []

        return EncodingStatus(
            can_sign=can_sign,
            can_encrypt=can_encrypt,
            addresses_failing_encryption=failing,
        )

    def encode(
        self,
        message: OutgoingMessage,
        *,
        should_sign: bool,
        should_encrypt: bool,
    ) -> EncodingResult:
        """
        Sign, then encrypt the signed bytes (or the original when signing
        failed or was not requested).
        """
        encoded: bytes | None = None
        signing_error: Exception | None = None
        encryption_error: Exception | None = None

        if should_sign:
            try:
                encoded = self._encoder.sign(message.raw, message.sender)
            except MessageSecurityError as e:
                logger.warning(f"Signing failed: {e.code}")
                signing_error = e

        if should_encrypt:
            try:
                encoded = self._encoder.encrypt(
                    encoded if encoded is not None else message.raw, message.recipients
                )
            except MessageSecurityError as e:
                logger.warning(f"Encryption failed: {e.code}")
                encryption_error = e

        if encoded is None:
            return EncodingResult(
                encoded_message=None,
                signing_error=signing_error,
                encryption_error=encryption_error,
            )

        return EncodingResult(
            encoded_message=normalize_line_endings(encoded, self._settings.host_newline),
            signing_error=signing_error,
            encryption_error=encryption_error,
            is_signed=should_sign and signing_error is None,
            is_encrypted=should_encrypt and encryption_error is None,
        )
