"""
Key Lookup
==========

Read-only view of the GnuPG keyring built from ``--with-colons`` listings,
and the facade that matches addresses and fingerprints to keys.

POST-KEYSTORE-02: can_sign is True only when a secret key is present.
INV-KEYSTORE-01: The keyring is listed, never mutated.
"""

from __future__ import annotations

import logging
import re
from email.utils import parseaddr

from contracts import Key, KeyStoreContract, UserID
from pgpmime_mcp.engine import GPGEngine

logger = logging.getLogger("pgpmime-mcp.keys")

_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")
# Validity values that make a key unusable
_UNUSABLE = {"r", "e", "d", "i"}


def normalize_address(address: str) -> str:
    """``"Alice <ALICE@Example.org>"`` -> ``"alice@example.org"``."""
    return parseaddr(address)[1].strip().lower()


def _unescape(value: str) -> str:
    return _ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


def _field(fields: list[str], index: int) -> str:
    return fields[index] if index < len(fields) else ""


def parse_colon_listing(text: str) -> list[dict]:
    """
    Group colon-listing records by primary key.

    Each entry: {"key_id", "fingerprint", "validity", "capabilities",
    "user_ids", "subkey_fingerprints"}.
    """
    keys: list[dict] = []
    current: dict | None = None
    last_record = ""
    for line in text.splitlines():
        fields = line.split(":")
        record = fields[0]
        if record in ("pub", "sec"):
            current = {
                "key_id": _field(fields, 4),
                "fingerprint": "",
                "validity": _field(fields, 1),
                "capabilities": _field(fields, 11),
                "user_ids": [],
                "subkey_fingerprints": [],
            }
            keys.append(current)
        elif current is None:
            continue
        elif record == "fpr":
            fingerprint = _field(fields, 9).upper()
            if last_record in ("pub", "sec"):
                current["fingerprint"] = fingerprint
            elif last_record in ("sub", "ssb"):
                current["subkey_fingerprints"].append(fingerprint)
        elif record == "uid":
            if _field(fields, 1) in ("r", "e"):
                last_record = record
                continue
            name, email = parseaddr(_unescape(_field(fields, 9)))
            current["user_ids"].append(UserID(email=email.lower(), name=name or None))
        last_record = record
    return keys


class GPGKeyStore:
    """Key store backed by ``gpg --list-keys``. Implements KeyStoreContract."""

    def __init__(self, engine: GPGEngine) -> None:
        self._engine = engine

    def _listing(self, secret: bool) -> list[dict]:
        result = self._engine.list_keys(secret=secret)
        if result.faulted:
            logger.error("Key listing failed; treating keyring as empty")
            return []
        return parse_colon_listing(result.output.decode("utf-8", errors="replace"))

    def all_keys(self) -> set[Key]:
        secret_fingerprints = {entry["fingerprint"] for entry in self._listing(secret=True)}
        keys = set()
        for entry in self._listing(secret=False):
            usable = entry["validity"] not in _UNUSABLE
            capabilities = entry["capabilities"]
            keys.add(
                Key(
                    key_id=entry["key_id"],
                    fingerprint=entry["fingerprint"],
                    user_ids=tuple(entry["user_ids"]),
                    can_sign=usable
                    and "S" in capabilities
                    and entry["fingerprint"] in secret_fingerprints,
                    can_encrypt=usable and "E" in capabilities,
                    subkey_fingerprints=tuple(entry["subkey_fingerprints"]),
                )
            )
        logger.info(f"Loaded {len(keys)} keys ({len(secret_fingerprints)} secret)")
        return keys


class KeyManager:
    """
    Address and fingerprint lookups over a key store.

    Every lookup lists the keyring unless handed a snapshot from
    ``all_keys()``; callers resolving several addresses pass one in.
    """

    def __init__(self, key_store: KeyStoreContract) -> None:
        self._key_store = key_store

    def all_keys(self) -> set[Key]:
        return self._key_store.all_keys()

    def _find_by_address(self, address: str, keys: set[Key] | None, *, sign: bool) -> Key | None:
        wanted = normalize_address(address)
        if not wanted:
            return None
        if keys is None:
            keys = self.all_keys()
        for key in sorted(keys, key=lambda k: k.fingerprint):
            if not (key.can_sign if sign else key.can_encrypt):
                continue
            if any(uid.email.lower() == wanted for uid in key.user_ids):
                return key
        return None

    def signing_key_for(self, address: str, keys: set[Key] | None = None) -> Key | None:
        return self._find_by_address(address, keys, sign=True)

    def encryption_key_for(self, address: str, keys: set[Key] | None = None) -> Key | None:
        return self._find_by_address(address, keys, sign=False)

    def key_for_fingerprint(self, fingerprint: str, keys: set[Key] | None = None) -> Key | None:
        """Match a primary or subkey fingerprint, or a long key id."""
        wanted = fingerprint.strip().upper()
        if not wanted:
            return None
        if keys is None:
            keys = self.all_keys()
        for key in keys:
            if key.fingerprint.upper() == wanted or wanted in key.subkey_fingerprints:
                return key
            if len(wanted) == 16 and key.key_id.upper() == wanted:
                return key
        return None
