"""
PGP/MIME Encoder
================

Builds RFC 3156 multipart/signed and multipart/encrypted messages.

POST-ENCODE-01: Signed output is the original entity followed by an
                application/pgp-signature part.
POST-ENCODE-02: Encrypted output is a "Version: 1" control part followed by
                the armored ciphertext.
INV-ENCODE-02: A missing signing key raises UnknownSignerError.
"""

from __future__ import annotations

import logging

from contracts import SigningFailedError, UnknownRecipientError, UnknownSignerError
from pgpmime_mcp.config import Settings
from pgpmime_mcp.engine import EngineResult, GPGEngine
from pgpmime_mcp.keys import KeyManager, normalize_address
from pgpmime_mcp.mime import MimePart, canonicalize_for_signing, canonicalize_signed_data
from pgpmime_mcp.mime_writer import MimeWriter
from pgpmime_mcp.signature import HashAlgorithm

logger = logging.getLogger("pgpmime-mcp.encoder")

SIGNATURE_CONTENT_TYPE = 'application/pgp-signature; name="openpgp-digital-signature.asc"'
ENCRYPTED_DISPOSITION = 'inline; filename="openpgp-encrypted-message.asc"'
CONTROL_BODY = b"Version: 1\r\n"


def _split_headers(message: MimePart) -> tuple[MimeWriter, MimeWriter]:
    """
    Split a message into its entity and an empty wrapper.

    Content-* headers and the body stay with the entity; every other header
    moves to the wrapper.
    """
    entity = MimeWriter()
    wrapper = MimeWriter()
    for name, values in message.headers.items():
        target = entity if name.lower().startswith("content-") else wrapper
        for value in values:
            target.add_header(name, value)
    entity.set_body(message.body)
    if "MIME-Version" not in wrapper.headers:
        wrapper.add_header("MIME-Version", "1.0")
    return entity, wrapper


def _require_output(result: EngineResult, operation: str) -> bytes:
    if result.faulted:
        raise SigningFailedError(f"gpg {operation} failed: {result.fault.__class__.__name__}")
    if not result.output:
        raise SigningFailedError(f"gpg {operation} produced no output")
    return result.output


class GPGEncoder:
    """Sign and encrypt outgoing messages."""

    def __init__(self, engine: GPGEngine, key_manager: KeyManager, settings: Settings) -> None:
        self._engine = engine
        self._key_manager = key_manager
        self._settings = settings

    def _micalg(self, result: EngineResult) -> str:
        # SIG_CREATED <type> <pk_algo> <hash_algo> <class> <timestamp> <fpr>
        for fields in result.entries("SIG_CREATED"):
            if len(fields) > 2 and fields[2].isdigit():
                try:
                    return HashAlgorithm(int(fields[2])).micalg
                except ValueError:
                    break
        return self._settings.default_micalg

    def sign(self, raw: bytes, sender: str) -> bytes:
        """
        Wrap raw in multipart/signed.

        ERRORS:
        - UnknownSignerError: no signing key for sender
        - SigningFailedError: engine faulted or returned nothing
        """
        key = self._key_manager.signing_key_for(sender)
        if key is None:
            raise UnknownSignerError(f"No signing key for {normalize_address(sender) or sender!r}")

        message = MimePart.from_bytes(canonicalize_for_signing(raw))
        entity, wrapper = _split_headers(message)
        signed = canonicalize_signed_data(entity.raw)

        result = self._engine.detach_sign(signed, key.key_id)
        signature = _require_output(result, "sign")
        logger.info(f"Signed {len(signed)} bytes with key {key.key_id}")

        signature_part = MimeWriter()
        signature_part.add_header("Content-Type", SIGNATURE_CONTENT_TYPE)
        signature_part.add_header("Content-Transfer-Encoding", "7Bit")
        signature_part.set_body(signature)

        wrapper.add_part(MimePart.from_bytes(signed))
        wrapper.add_part(signature_part)
        content_type = (
            f'multipart/signed; protocol="application/pgp-signature"; '
            f'micalg={self._micalg(result)}; boundary="{wrapper.boundary}"'
        )
        if not wrapper.add_header("Content-Type", content_type):
            raise SigningFailedError("Could not frame multipart/signed message")
        return wrapper.raw

    def encrypt(self, raw: bytes, recipients: list[str]) -> bytes:
        """
        Wrap raw in multipart/encrypted for every recipient with a key.

        ERRORS:
        - UnknownRecipientError: nobody can be encrypted to
        - SigningFailedError: engine faulted or returned nothing
        """
        keys = self._key_manager.all_keys()
        addresses = []
        for recipient in recipients:
            if self._key_manager.encryption_key_for(recipient, keys) is not None:
                addresses.append(normalize_address(recipient))
        if not addresses:
            raise UnknownRecipientError()

        message = MimePart.from_bytes(canonicalize_for_signing(raw))
        entity, wrapper = _split_headers(message)

        result = self._engine.encrypt(entity.raw, addresses)
        ciphertext = _require_output(result, "encrypt")
        logger.info(f"Encrypted {len(entity.raw)} bytes for {len(addresses)} recipients")

        control_part = MimeWriter()
        control_part.add_header("Content-Type", "application/pgp-encrypted")
        control_part.set_body(CONTROL_BODY)

        encrypted_part = MimeWriter()
        encrypted_part.add_header("Content-Type", "application/octet-stream")
        encrypted_part.add_header("Content-Disposition", ENCRYPTED_DISPOSITION)
        encrypted_part.add_header("Content-Transfer-Encoding", "7Bit")
        encrypted_part.set_body(ciphertext)

        wrapper.add_part(control_part)
        wrapper.add_part(encrypted_part)
        content_type = (
            f'multipart/encrypted; protocol="application/pgp-encrypted"; '
            f'boundary="{wrapper.boundary}"'
        )
        if not wrapper.add_header("Content-Type", content_type):
            raise SigningFailedError("Could not frame multipart/encrypted message")
        return wrapper.raw
