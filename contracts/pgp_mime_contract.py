"""
PGP/MIME Message Security Contract
==================================

Behavioural contract for the PGP/MIME decode, verify, sign and encrypt
boundary that sits between raw RFC 822 bytes and the GnuPG engine.

Implementation SHALL perform ONLY declared behaviors. Every public operation
carries PRE/POST/INV/ERRORS clauses; tests cite the clauses they enforce.

AUTHORITY: This file is the SINGLE authoritative source for pgpmime-mcp behavior.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol, runtime_checkable


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class MessageShape(Enum):
    """How a top-level message presents its PGP content."""
    PLAIN = auto()
    INLINE_ENCRYPTED = auto()
    INLINE_SIGNED = auto()
    MULTIPART_ENCRYPTED = auto()
    MULTIPART_SIGNED = auto()


@dataclass(frozen=True)
class UserID:
    """One identity attached to a key."""
    email: str
    name: str | None = None


@dataclass(frozen=True)
class Key:
    """Capability-tagged key as reported by the key store."""
    key_id: str
    fingerprint: str
    user_ids: tuple[UserID, ...] = ()
    can_sign: bool = False
    can_encrypt: bool = False
    subkey_fingerprints: tuple[str, ...] = ()

    @property
    def primary_user_id(self) -> UserID | None:
        return self.user_ids[0] if self.user_ids else None


@dataclass(frozen=True)
class Signer:
    """A signer as presented to the host."""
    email_addresses: list[str]
    label: str
    context: bytes | None = None


@dataclass(frozen=True)
class SecurityInformation:
    """Security verdict for one decoded message."""
    signers: list[Signer] = field(default_factory=list)
    is_encrypted: bool = False
    signing_error: Exception | None = None
    encryption_error: Exception | None = None


@dataclass(frozen=True)
class DecodedMessage:
    """Decoded bytes plus the verdict that produced them."""
    data: bytes
    security_information: SecurityInformation


@dataclass(frozen=True)
class OutgoingMessage:
    """A message the host wants signed and/or encrypted."""
    raw: bytes
    sender: str
    recipients: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EncodingStatus:
    """What the compose window may offer for a message."""
    can_sign: bool
    can_encrypt: bool
    addresses_failing_encryption: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EncodingResult:
    """Outcome of encode(); absence of an error means success."""
    encoded_message: bytes | None
    signing_error: Exception | None = None
    encryption_error: Exception | None = None
    is_signed: bool = False
    is_encrypted: bool = False


# =============================================================================
# ERROR TYPES
# =============================================================================

class MessageSecurityError(Exception):
    """Base error for all message security operations."""
    code: str = "MESSAGE_SECURITY_ERROR"
    reason: str = "Message security error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason)


class CouldNotDecryptError(MessageSecurityError):
    """
    ERRORS-DECODE-01: The engine produced no usable plaintext.

    RECOVERY: Original message returned unmodified, error attached.
    """
    code = "COULD_NOT_DECRYPT"
    reason = "Could not decrypt message"


class SignatureError(MessageSecurityError):
    """
    ERRORS-VERIFY-01: Generic verification failure.

    RECOVERY: Message still displayed; signer list carries the detail.
    """
    code = "SIGNATURE_ERROR"
    reason = "Error verifying signature."


class UnknownSignatureError(SignatureError):
    """
    ERRORS-VERIFY-02: The signer's public key is not available.

    RECOVERY: User may import the key and re-open the message.
    """
    code = "UNKNOWN_SIGNATURE"
    reason = "The signature was made by an unknown key."


class BadSignatureError(SignatureError):
    """
    ERRORS-VERIFY-03: Cryptographic mismatch between data and signature.

    RECOVERY: None. The content was altered or the signature forged.
    """
    code = "BAD_SIGNATURE"
    reason = "The signature does not match the message."


class UnknownSignerError(MessageSecurityError):
    """
    ERRORS-ENCODE-01: No signing key for the sender address.

    RECOVERY: User must create or import a secret key for the sender.
    """
    code = "UNKNOWN_SIGNER"
    reason = "No signing key is available for the sender."


class UnknownRecipientError(MessageSecurityError):
    """
    ERRORS-ENCODE-02: No recipient has an encryption key.

    RECOVERY: User must import recipient public keys.
    """
    code = "UNKNOWN_RECIPIENT"
    reason = "No encryption key is available for any recipient."


class SigningFailedError(MessageSecurityError):
    """
    ERRORS-ENCODE-03: The engine faulted or produced no output.

    RECOVERY: Message is not sent signed/encrypted; host decides.
    """
    code = "SIGNING_FAILED"
    reason = "The signing engine failed."


class UnsupportedError(MessageSecurityError):
    """
    ERRORS-GLOBAL-01: Feature not implemented for this path.
    """
    code = "UNSUPPORTED"
    reason = "Operation not supported."


class InvalidMessageError(MessageSecurityError):
    """
    ERRORS-TOOL-01: Tool input could not be turned into message bytes.

    RECOVERY: Caller must send base64-encoded RFC 822 bytes.
    """
    code = "INVALID_MESSAGE"
    reason = "Message payload is not valid base64."


# =============================================================================
# ENGINE / KEY STORE CONTRACTS
# =============================================================================

@runtime_checkable
class KeyStoreContract(Protocol):
    """
    Read-only key store.

    POST-KEYSTORE-01: Returns every key the engine knows about
    POST-KEYSTORE-02: can_sign is True only when a secret key is present

    INV-KEYSTORE-01 (Read-Only): The store is queried, never mutated
    """

    def all_keys(self) -> set[Key]:
        """Return all keys."""
        ...


# =============================================================================
# HOST BOUNDARY CONTRACTS
# =============================================================================

@runtime_checkable
class DecodeContract(Protocol):
    """
    Operations: should_handle, decode

    Classify a received message and resolve its PGP content.

    PRE-DECODE-01: data is the complete RFC 822 message as bytes

    POST-DECODE-01: should_handle is True for every shape except PLAIN
    POST-DECODE-02: multipart/signed and multipart/encrypted outrank armor text
    POST-DECODE-03: PLAIN messages are returned byte-for-byte unmodified
    POST-DECODE-04: is_encrypted reflects the outermost encryption layer, even
                    after nested signed content is unwrapped
    POST-DECODE-05: Nested encrypted/signed layers are resolved recursively

    INV-DECODE-01 (Never Drops): A failed security operation still returns
                   the original message with the error attached
    INV-DECODE-02 (No Raise): MIME parsing never raises
    INV-DECODE-03 (No Content Logging): Plaintext, ciphertext and signatures
                   never appear in logs

    ERRORS:
    - COULD_NOT_DECRYPT: Engine produced no plaintext
    - SIGNATURE_ERROR / UNKNOWN_SIGNATURE / BAD_SIGNATURE: attached verdicts
    """

    def should_handle(self, data: bytes) -> bool:
        """Return True if this boundary has work to do for data."""
        ...

    def decode(self, data: bytes) -> DecodedMessage:
        """Decrypt and/or verify data."""
        ...


@runtime_checkable
class VerifyContract(Protocol):
    """
    Detached signature verification for multipart/signed.

    PRE-VERIFY-01: Exactly one child has subtype pgp-signature

    POST-VERIFY-01: Data part canonicalized to at most one trailing line
                    terminator, preferring the original CRLF form
    POST-VERIFY-02: Canonical bytes and detached signature passed to --verify
    POST-VERIFY-03: Returned body is the data part, not the signature

    INV-VERIFY-01 (Scratch Cleanup): Scratch file removed on every exit path
    INV-VERIFY-02 (Priority): ERRSIG > VALIDSIG > BADSIG > none
    """


@runtime_checkable
class EncodeContract(Protocol):
    """
    Operations: encoding_status, encode

    PRE-ENCODE-01: message.raw is a complete RFC 822 message

    POST-ENCODE-01: Signed output is multipart/signed with the original entity
                    first and an application/pgp-signature part second
    POST-ENCODE-02: Encrypted output is multipart/encrypted with a
                    "Version: 1" control part and an octet-stream part
    POST-ENCODE-03: Sign-then-encrypt encrypts the signed bytes
    POST-ENCODE-04: encoding_status lists failing addresses only when at
                    least one recipient can be encrypted to

    INV-ENCODE-01 (Fault Boundary): No engine fault escapes encode
    INV-ENCODE-02 (Explicit Failure): Missing signing key is UNKNOWN_SIGNER,
                   never a silent no-op

    ERRORS:
    - UNKNOWN_SIGNER: No signing key for sender
    - UNKNOWN_RECIPIENT: No recipient can be encrypted to
    - SIGNING_FAILED: Engine faulted or returned nothing
    """

    def encoding_status(self, sender: str, recipients: list[str]) -> EncodingStatus:
        """Report sign/encrypt capability for a draft."""
        ...

    def encode(
        self,
        message: OutgoingMessage,
        *,
        should_sign: bool,
        should_encrypt: bool,
    ) -> EncodingResult:
        """Sign and/or encrypt message."""
        ...


# =============================================================================
# MIME CONTRACTS
# =============================================================================

"""
MIME Structure Rules
--------------------

INV-MIME-01 (Byte Exact): Parts are byte slices of the input; CRLF is one
            two-byte terminator, LF is one byte
INV-MIME-02 (Epilogue): Nothing after the final --boundary-- is a part
INV-MIME-03 (Lenient Grammar): Malformed parameters are dropped, never raised
INV-MIME-04 (Framing): A composite writer refuses a Content-Type that does not
            carry its own boundary
INV-MIME-05 (Folding): Header lines longer than 80 characters are folded with
            CRLF + TAB continuations
"""


# =============================================================================
# GLOBAL INVARIANTS (Apply to ALL operations)
# =============================================================================

"""
INV-GLOBAL-01 (Synchronous): No internal threads; engine calls block.

INV-GLOBAL-02 (No Global Lookup): Engine, key store and settings are passed
             explicitly into each service.

INV-GLOBAL-03 (Key Store Read-Only): Keys are listed, never imported,
             generated or deleted.
"""


# =============================================================================
# TEST CASE INDEX (Traceability)
# =============================================================================

TEST_CASES = {
    # Header grammar
    "test_content_type_parameters": {
        "contract": "MIME",
        "enforces": ["INV-MIME-03"],
    },
    "test_malformed_parameters_dropped": {
        "contract": "MIME",
        "enforces": ["INV-MIME-03"],
    },
    # Part model
    "test_iterate_crlf_parts": {
        "contract": "MIME",
        "enforces": ["INV-MIME-01"],
    },
    "test_epilogue_ignored": {
        "contract": "MIME",
        "enforces": ["INV-MIME-02"],
    },
    "test_only_final_boundary_yields_nothing": {
        "contract": "MIME",
        "enforces": ["INV-MIME-02", "INV-DECODE-02"],
    },
    # Writer
    "test_composite_rejects_foreign_content_type": {
        "contract": "MIME",
        "enforces": ["INV-MIME-04"],
    },
    "test_long_header_folded_on_semicolons": {
        "contract": "MIME",
        "enforces": ["INV-MIME-05"],
    },
    # Decode
    "test_plain_message_passthrough": {
        "contract": "DecodeContract",
        "enforces": ["POST-DECODE-01", "POST-DECODE-03"],
    },
    "test_multipart_encrypted_decrypts_second_part": {
        "contract": "DecodeContract",
        "enforces": ["POST-DECODE-01"],
    },
    "test_multipart_outranks_inline_armor": {
        "contract": "DecodeContract",
        "enforces": ["POST-DECODE-02"],
    },
    "test_nested_signed_inside_encrypted": {
        "contract": "DecodeContract",
        "enforces": ["POST-DECODE-04", "POST-DECODE-05"],
    },
    "test_decrypt_failure_returns_original": {
        "contract": "DecodeContract",
        "enforces": ["INV-DECODE-01", "ERRORS: COULD_NOT_DECRYPT"],
    },
    "test_decode_no_plaintext_logging": {
        "contract": "DecodeContract",
        "enforces": ["INV-DECODE-03"],
        "adversarial": True,
        "description": "Verify decrypted text never reaches log output",
    },
    # Verify
    "test_canonical_bytes_passed_to_verify": {
        "contract": "VerifyContract",
        "enforces": ["POST-VERIFY-01", "POST-VERIFY-02", "POST-VERIFY-03"],
    },
    "test_scratch_file_removed_on_failure": {
        "contract": "VerifyContract",
        "enforces": ["INV-VERIFY-01"],
        "adversarial": True,
        "description": "Verify scratch file is gone even when the engine faults",
    },
    "test_errsig_outranks_validsig": {
        "contract": "VerifyContract",
        "enforces": ["INV-VERIFY-02"],
    },
    # Encode
    "test_sign_wraps_multipart_signed": {
        "contract": "EncodeContract",
        "enforces": ["POST-ENCODE-01"],
    },
    "test_encrypt_wraps_multipart_encrypted": {
        "contract": "EncodeContract",
        "enforces": ["POST-ENCODE-02"],
    },
    "test_sign_then_encrypt": {
        "contract": "EncodeContract",
        "enforces": ["POST-ENCODE-03"],
    },
    "test_encoding_status_failing_addresses": {
        "contract": "EncodeContract",
        "enforces": ["POST-ENCODE-04"],
    },
    "test_engine_fault_becomes_signing_failed": {
        "contract": "EncodeContract",
        "enforces": ["INV-ENCODE-01", "ERRORS: SIGNING_FAILED"],
        "adversarial": True,
        "description": "Verify a crashing engine never raises out of encode",
    },
    "test_unknown_signer": {
        "contract": "EncodeContract",
        "enforces": ["INV-ENCODE-02", "ERRORS: UNKNOWN_SIGNER"],
    },
    # Key store
    "test_can_sign_requires_secret_key": {
        "contract": "KeyStoreContract",
        "enforces": ["POST-KEYSTORE-01", "POST-KEYSTORE-02"],
    },
    "test_key_store_read_only": {
        "contract": "KeyStoreContract",
        "enforces": ["INV-KEYSTORE-01", "INV-GLOBAL-03"],
        "adversarial": True,
        "description": "Verify no import/delete/generate arguments reach gpg",
    },
}
