"""
PGP/MIME Decoder
================

Classifies a received message and resolves its encrypted and signed layers.

POST-DECODE-02: multipart/signed and multipart/encrypted outrank armor text.
POST-DECODE-05: Decrypted multipart output is decoded again, up to
                ``max_nesting_depth`` layers.
INV-DECODE-01: On failure the original bytes are returned with the error
               attached.
INV-DECODE-03: Only shapes, sizes and verdict codes are logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from contracts import (
    CouldNotDecryptError,
    DecodedMessage,
    MessageShape,
    SecurityInformation,
    SignatureError,
    Signer,
)
from pgpmime_mcp.config import Settings
from pgpmime_mcp.engine import GPGEngine
from pgpmime_mcp.keys import KeyManager
from pgpmime_mcp.mime import (
    MimePart,
    canonicalize_signed_data,
    line_terminator_width,
    normalize_line_endings,
)
from pgpmime_mcp.mime_writer import MimeWriter
from pgpmime_mcp.signature import classify_signatures

logger = logging.getLogger("pgpmime-mcp.decoder")

ARMOR_MESSAGE = b"-----BEGIN PGP MESSAGE-----"
ARMOR_SIGNED_MESSAGE = b"-----BEGIN PGP SIGNED MESSAGE-----"
ARMOR_SIGNATURE = b"-----BEGIN PGP SIGNATURE-----"
ARMOR_SIGNATURE_END = b"-----END PGP SIGNATURE-----"

PGP_ENCRYPTED = "application/pgp-encrypted"
PGP_SIGNATURE = "application/pgp-signature"


def classify(part: MimePart) -> MessageShape:
    """Shape of a top-level part; multipart framing is checked first."""
    content_type = part.content_type
    if content_type is not None and content_type.type == "multipart":
        protocol = (content_type.protocol or "").strip().lower()
        if content_type.subtype == "signed" and protocol == PGP_SIGNATURE:
            return MessageShape.MULTIPART_SIGNED
        if content_type.subtype == "encrypted" and protocol == PGP_ENCRYPTED:
            return MessageShape.MULTIPART_ENCRYPTED

    body = part.body
    if ARMOR_MESSAGE in body:
        return MessageShape.INLINE_ENCRYPTED
    if all(m in body for m in (ARMOR_SIGNED_MESSAGE, ARMOR_SIGNATURE, ARMOR_SIGNATURE_END)):
        return MessageShape.INLINE_SIGNED
    return MessageShape.PLAIN


def is_control_part(part: MimePart) -> bool:
    """``application/pgp-encrypted`` carrying ``Version: 1``."""
    return part.is_type("application", "pgp-encrypted") and (
        part.body.rstrip(b"\r\n") == b"Version: 1"
    )


@dataclass
class _Layer:
    """Result of resolving one layer; resolved is False for pass-through."""

    data: bytes
    signers: list[Signer] = field(default_factory=list)
    is_encrypted: bool = False
    signing_error: Exception | None = None
    encryption_error: Exception | None = None
    resolved: bool = False


class GPGDecoder:
    """Implements DecodeContract and VerifyContract."""

    def __init__(self, engine: GPGEngine, key_manager: KeyManager, settings: Settings) -> None:
        self._engine = engine
        self._key_manager = key_manager
        self._settings = settings

    def should_decode(self, data: bytes) -> bool:
        return classify(MimePart.from_bytes(data)) is not MessageShape.PLAIN

    def decode(self, data: bytes) -> DecodedMessage:
        """
        Decrypt and/or verify data.

        Resolved output has CRLF converted to the host line ending;
        pass-through and failure paths return data untouched.
        """
        part = MimePart.from_bytes(data)
        layer = self._resolve(part, depth=1, was_encrypted=False)

        logger.info(
            f"Decoded {len(data)} byte message: encrypted={layer.is_encrypted}, "
            f"signers={len(layer.signers)}, "
            f"signing_error={_code(layer.signing_error)}, "
            f"encryption_error={_code(layer.encryption_error)}"
        )

        output = data
        if layer.resolved:
            output = normalize_line_endings(layer.data, self._settings.host_newline)
        return DecodedMessage(
            data=output,
            security_information=SecurityInformation(
                signers=layer.signers,
                is_encrypted=layer.is_encrypted,
                signing_error=layer.signing_error,
                encryption_error=layer.encryption_error,
            ),
        )

    def _resolve(self, part: MimePart, depth: int, was_encrypted: bool) -> _Layer:
        shape = classify(part)
        logger.debug(f"Layer {depth}: {shape.name}")

        if shape is MessageShape.PLAIN:
            return _Layer(data=part.raw, is_encrypted=was_encrypted)
        if depth > self._settings.max_nesting_depth:
            logger.warning(f"Nesting deeper than {self._settings.max_nesting_depth}; not unwrapping")
            return _Layer(data=part.raw, is_encrypted=was_encrypted)

        if shape is MessageShape.MULTIPART_ENCRYPTED:
            return self._decode_multipart_encrypted(part, depth, was_encrypted)
        if shape is MessageShape.MULTIPART_SIGNED:
            return self._verify_multipart_signed(part, was_encrypted)
        if shape is MessageShape.INLINE_ENCRYPTED:
            return self._decode_inline_encrypted(part, was_encrypted)
        return self._verify_inline_signed(part, was_encrypted)

    def _decode_multipart_encrypted(self, part: MimePart, depth: int, was_encrypted: bool) -> _Layer:
        children = list(part.iter_parts() or [])
        if not children or not is_control_part(children[0]):
            logger.warning("Missing or malformed pgp-encrypted control part; continuing")

        payload = next(
            (c for c in children if not c.is_type("application", "pgp-encrypted")), None
        )
        if payload is None:
            logger.warning("multipart/encrypted without an encrypted payload part")
            return _Layer(
                data=part.raw,
                is_encrypted=was_encrypted,
                encryption_error=CouldNotDecryptError(),
            )

        result = self._engine.decrypt(payload.raw)
        if result.faulted or not result.output:
            return _Layer(
                data=part.raw,
                is_encrypted=was_encrypted,
                encryption_error=CouldNotDecryptError(),
            )

        verdict = classify_signatures(result.status, self._key_manager)
        signers = list(verdict.signers)
        signing_error: Exception | None = verdict.error
        encryption_error: Exception | None = None

        inner = MimePart.from_bytes(result.output)
        if inner.is_multipart:
            nested = self._resolve(inner, depth + 1, was_encrypted=True)
            inner = MimePart.from_bytes(nested.data)
            signers += nested.signers
            signing_error = nested.signing_error or signing_error
            encryption_error = nested.encryption_error

        return _Layer(
            data=MimeWriter.wrap(part, inner).raw,
            signers=signers,
            is_encrypted=True,
            signing_error=signing_error,
            encryption_error=encryption_error,
            resolved=True,
        )

    def _verify_multipart_signed(self, part: MimePart, was_encrypted: bool) -> _Layer:
        children = list(part.iter_parts() or [])
        signatures = [c for c in children if c.is_type("application", "pgp-signature")]
        data_parts = [c for c in children if not c.is_type("application", "pgp-signature")]
        if len(signatures) != 1 or not data_parts:
            logger.warning(
                f"multipart/signed with {len(signatures)} signature parts "
                f"and {len(data_parts)} data parts"
            )
            return _Layer(data=part.raw, is_encrypted=was_encrypted, signing_error=SignatureError())

        data_part = data_parts[0]
        result = self._engine.verify(canonicalize_signed_data(data_part.raw), signatures[0].body)
        if result.faulted:
            return _Layer(data=part.raw, is_encrypted=was_encrypted, signing_error=SignatureError())

        verdict = classify_signatures(result.status, self._key_manager)
        if not verdict.signers and verdict.error is None:
            logger.warning(f"gpg verify exited {result.returncode} without a signature verdict")
            return _Layer(data=part.raw, is_encrypted=was_encrypted, signing_error=SignatureError())

        return _Layer(
            data=MimeWriter.wrap(part, data_part).raw,
            signers=verdict.signers,
            is_encrypted=was_encrypted,
            signing_error=verdict.error,
            resolved=True,
        )

    def _decode_inline_encrypted(self, part: MimePart, was_encrypted: bool) -> _Layer:
        start = part.raw.find(ARMOR_MESSAGE)
        result = self._engine.decrypt(part.raw[start:])
        if result.faulted or not result.output:
            return _Layer(
                data=part.raw,
                is_encrypted=was_encrypted,
                encryption_error=CouldNotDecryptError(),
            )

        verdict = classify_signatures(result.status, self._key_manager)
        return _Layer(
            data=part.raw[:start] + result.output,
            signers=verdict.signers,
            is_encrypted=True,
            signing_error=verdict.error,
            resolved=True,
        )

    def _verify_inline_signed(self, part: MimePart, was_encrypted: bool) -> _Layer:
        raw = part.raw
        start = raw.find(ARMOR_SIGNED_MESSAGE)
        end = raw.find(ARMOR_SIGNATURE_END, start)
        if start == -1 or end == -1:
            return _Layer(data=raw, is_encrypted=was_encrypted)
        end += len(ARMOR_SIGNATURE_END)
        end += line_terminator_width(raw, end)

        result = self._engine.decrypt(raw[start:end])
        if result.faulted or not result.output:
            verdict = classify_signatures(result.status, self._key_manager)
            return _Layer(
                data=raw,
                signers=verdict.signers,
                is_encrypted=was_encrypted,
                signing_error=verdict.error or SignatureError(),
            )

        verdict = classify_signatures(result.status, self._key_manager)
        if not verdict.signers and verdict.error is None:
            logger.warning(f"gpg decrypt exited {result.returncode} without a signature verdict")
            return _Layer(data=raw, is_encrypted=was_encrypted, signing_error=SignatureError())

        return _Layer(
            data=raw[:start] + result.output + raw[end:],
            signers=verdict.signers,
            is_encrypted=was_encrypted,
            signing_error=verdict.error,
            resolved=True,
        )


def _code(error: Exception | None) -> str | None:
    return getattr(error, "code", None) if error is not None else None
