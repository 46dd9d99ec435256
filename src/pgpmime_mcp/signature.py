"""
Signature Status Classifier
===========================

Reduces the engine's status stream for one invocation to a list of signers
and at most one aggregate signing error.

INV-VERIFY-02 (Priority): ERRSIG > VALIDSIG > BADSIG > none.
Malformed numeric fields never raise; they become None or raw ints.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.utils import parseaddr
from enum import IntEnum

from contracts import (
    BadSignatureError,
    SignatureError,
    Signer,
    UnknownSignatureError,
)
from pgpmime_mcp.keys import KeyManager

# libgpg-error codes reported in ERRSIG
GPG_ERR_NO_ERROR = 0
GPG_ERR_PUBKEY_ALGO = 4
GPG_ERR_BAD_SIGNATURE = 8
GPG_ERR_NO_PUBKEY = 9
GPG_ERR_CERT_REVOKED = 94
GPG_ERR_KEY_EXPIRED = 153
GPG_ERR_SIG_EXPIRED = 154

LABEL_SIGNED = "Signed"
LABEL_EXPIRED = "Signature expired"
LABEL_REVOKED = "Signature revoked"
LABEL_UNVERIFIABLE = "Unverifiable signature"
LABEL_STRANGER = "Signed by stranger"
LABEL_BAD = "Bad signature"
LABEL_ERROR = "Signature error"


class PublicKeyAlgorithm(IntEnum):
    RSA = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL_ENCRYPT_ONLY = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    ELGAMAL = 20
    DIFFIE_HELLMAN = 21
    EDDSA = 22


class HashAlgorithm(IntEnum):
    MD5 = 1
    SHA1 = 2
    RMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11

    @property
    def micalg(self) -> str:
        """RFC 3156 micalg token, e.g. ``pgp-sha256``."""
        return f"pgp-{self.name.lower()}"


def _field(fields: list[str], index: int) -> str | None:
    return fields[index] if index < len(fields) else None


def _int(value: str | None, base: int = 10) -> int | None:
    if value is None:
        return None
    try:
        return int(value, base)
    except ValueError:
        return None


def _enum(enum_cls: type[IntEnum], value: str | None) -> IntEnum | int | None:
    number = _int(value)
    if number is None:
        return None
    try:
        return enum_cls(number)
    except ValueError:
        return number


def _timestamp(value: str | None) -> datetime | None:
    """Seconds since the epoch, or the ISO 8601 basic form gpg may emit."""
    if not value or value == "0":
        return None
    seconds = _int(value)
    if seconds is not None:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    try:
        return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass(frozen=True)
class ValidSignature:
    """VALIDSIG detail for a good signature."""

    fingerprint: str
    created: datetime | None
    expires: datetime | None
    version: int | None
    key_algorithm: PublicKeyAlgorithm | int | None
    hash_algorithm: HashAlgorithm | int | None
    signature_class: int | None
    primary_key_fingerprint: str | None

    @classmethod
    def from_fields(cls, fields: list[str]) -> ValidSignature:
        # <fpr> <date> <timestamp> <expire> <version> <reserved> <pkalgo>
        # <hashalgo> <class> [<primary-fpr>]
        return cls(
            fingerprint=_field(fields, 0) or "",
            created=_timestamp(_field(fields, 2)),
            expires=_timestamp(_field(fields, 3)),
            version=_int(_field(fields, 4)),
            key_algorithm=_enum(PublicKeyAlgorithm, _field(fields, 6)),
            hash_algorithm=_enum(HashAlgorithm, _field(fields, 7)),
            signature_class=_int(_field(fields, 8), 16),
            primary_key_fingerprint=_field(fields, 9),
        )

    def to_json(self) -> bytes:
        """Opaque verification context handed to the host."""

        def default(obj: object) -> object:
            if isinstance(obj, datetime):
                return obj.isoformat()
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(asdict(self), default=default, sort_keys=True).encode("utf-8")


@dataclass(frozen=True)
class ErrorSignature:
    """ERRSIG detail: the signature could not be checked."""

    key_id: str
    key_algorithm: PublicKeyAlgorithm | int | None
    hash_algorithm: HashAlgorithm | int | None
    signature_class: int | None
    created: datetime | None
    reason_code: int | None
    fingerprint: str | None

    @classmethod
    def from_fields(cls, fields: list[str]) -> ErrorSignature:
        # <keyid> <pkalgo> <hashalgo> <sig_class> <time> <rc> [<fpr>]
        return cls(
            key_id=_field(fields, 0) or "",
            key_algorithm=_enum(PublicKeyAlgorithm, _field(fields, 1)),
            hash_algorithm=_enum(HashAlgorithm, _field(fields, 2)),
            signature_class=_int(_field(fields, 3), 16),
            created=_timestamp(_field(fields, 4)),
            reason_code=_int(_field(fields, 5)),
            fingerprint=_field(fields, 6),
        )

    @property
    def no_public_key(self) -> bool:
        return self.reason_code == GPG_ERR_NO_PUBKEY

    @property
    def label(self) -> str:
        code = self.reason_code
        if code == GPG_ERR_NO_ERROR:
            return LABEL_SIGNED
        if code in (GPG_ERR_SIG_EXPIRED, GPG_ERR_KEY_EXPIRED):
            return LABEL_EXPIRED
        if code == GPG_ERR_CERT_REVOKED:
            return LABEL_REVOKED
        if code == GPG_ERR_PUBKEY_ALGO:
            return LABEL_UNVERIFIABLE
        if code == GPG_ERR_NO_PUBKEY:
            return LABEL_STRANGER
        if code == GPG_ERR_BAD_SIGNATURE:
            return LABEL_BAD
        return LABEL_ERROR


@dataclass(frozen=True)
class BadSignature:
    """BADSIG detail: the signature does not match the data."""

    key_id: str
    user_id: str

    @classmethod
    def from_fields(cls, fields: list[str]) -> BadSignature:
        # <long_keyid_or_fpr> <username>
        return cls(key_id=_field(fields, 0) or "", user_id=" ".join(fields[1:]))

    @property
    def name(self) -> str:
        return parseaddr(self.user_id)[0]

    @property
    def email(self) -> str:
        return parseaddr(self.user_id)[1]


@dataclass(frozen=True)
class SignatureVerdict:
    signers: list[Signer] = field(default_factory=list)
    error: SignatureError | None = None


def classify_signatures(
    status: dict[str, list[list[str]]], key_manager: KeyManager
) -> SignatureVerdict:
    """Fold one invocation's status entries into signers plus an error."""
    if status.get("ERRSIG"):
        signers = []
        error: SignatureError = SignatureError()
        for fields in status["ERRSIG"]:
            detail = ErrorSignature.from_fields(fields)
            signers.append(Signer(email_addresses=[], label=detail.label))
            if detail.no_public_key:
                error = UnknownSignatureError()
            else:
                error = SignatureError()
        return SignatureVerdict(signers=signers, error=error)

    if status.get("VALIDSIG"):
        signers = []
        unknown: SignatureError | None = None
        keys = key_manager.all_keys()
        for fields in status["VALIDSIG"]:
            detail = ValidSignature.from_fields(fields)
            key = key_manager.key_for_fingerprint(detail.fingerprint, keys)
            if key is None and detail.primary_key_fingerprint:
                key = key_manager.key_for_fingerprint(detail.primary_key_fingerprint, keys)

            if key is None:
                unknown = UnknownSignatureError()
                signers.append(
                    Signer(email_addresses=[], label=LABEL_STRANGER, context=detail.to_json())
                )
                continue

            primary = key.primary_user_id
            label = (primary.name or primary.email) if primary else LABEL_SIGNED
            signers.append(
                Signer(
                    email_addresses=[uid.email for uid in key.user_ids if uid.email],
                    label=label,
                    context=detail.to_json(),
                )
            )
        return SignatureVerdict(signers=signers, error=unknown)

    if status.get("BADSIG"):
        signers = []
        for fields in status["BADSIG"]:
            detail = BadSignature.from_fields(fields)
            signers.append(
                Signer(
                    email_addresses=[detail.email] if detail.email else [],
                    label=detail.name or detail.email or LABEL_BAD,
                )
            )
        return SignatureVerdict(signers=signers, error=BadSignatureError())

    return SignatureVerdict()
