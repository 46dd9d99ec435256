"""
Shared fixtures: an in-memory engine and key store standing in for gpg.
"""

import pytest

from contracts import Key, UserID
from pgpmime_mcp.config import Settings
from pgpmime_mcp.decoder import GPGDecoder
from pgpmime_mcp.encoder import GPGEncoder
from pgpmime_mcp.engine import EngineResult
from pgpmime_mcp.handler import MessageSecurityHandler
from pgpmime_mcp.keys import KeyManager

ALICE_FPR = "0123456789ABCDEF0123456789ABCDEFAAAA1111"
ALICE_SUBKEY_FPR = "FEDCBA9876543210FEDCBA9876543210CCCC3333"
BOB_FPR = "1111222233334444555566667777888899990000"


class FakeEngine:
    """Records every call; replies with canned EngineResults per operation."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.results: dict[str, EngineResult] = {}

    def _reply(self, operation: str, *args) -> EngineResult:
        self.calls.append((operation, *args))
        return self.results.get(operation, EngineResult(returncode=2))

    def decrypt(self, data):
        return self._reply("decrypt", data)

    def verify(self, data, signature):
        return self._reply("verify", data, signature)

    def detach_sign(self, data, key_id):
        return self._reply("detach_sign", data, key_id)

    def encrypt(self, data, recipients):
        return self._reply("encrypt", data, list(recipients))

    def list_keys(self, secret=False):
        return self._reply("list_keys", secret)


class FakeKeyStore:
    def __init__(self, keys) -> None:
        self._keys = set(keys)

    def all_keys(self):
        return set(self._keys)


@pytest.fixture
def settings():
    """Defaults only; no environment or .env influence."""
    return Settings(_env_file=None, gpg_binary="gpg", gnupg_home=None)


@pytest.fixture
def alice_key():
    return Key(
        key_id="0123456789ABCDEF",
        fingerprint=ALICE_FPR,
        user_ids=(
            UserID(email="alice@example.org", name="Alice Example"),
            UserID(email="alice@work.example.com", name="Alice Example"),
        ),
        can_sign=True,
        can_encrypt=True,
        subkey_fingerprints=(ALICE_SUBKEY_FPR,),
    )


@pytest.fixture
def bob_key():
    return Key(
        key_id="7777888899990000",
        fingerprint=BOB_FPR,
        user_ids=(UserID(email="bob@example.org", name="Bob Builder"),),
        can_sign=False,
        can_encrypt=True,
    )


@pytest.fixture
def key_manager(alice_key, bob_key):
    return KeyManager(FakeKeyStore([alice_key, bob_key]))


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def decoder(fake_engine, key_manager, settings):
    return GPGDecoder(fake_engine, key_manager, settings)


@pytest.fixture
def encoder(fake_engine, key_manager, settings):
    return GPGEncoder(fake_engine, key_manager, settings)


@pytest.fixture
def handler(decoder, encoder, key_manager, settings):
    return MessageSecurityHandler(decoder, encoder, key_manager, settings)
