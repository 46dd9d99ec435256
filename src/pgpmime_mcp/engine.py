"""
GnuPG Engine Boundary
=====================

Runs the ``gpg`` binary for every cryptographic operation and turns its
machine-readable status stream into a dictionary.

INV-GLOBAL-01: Calls are synchronous; no threads are started here.
INV-GLOBAL-03: Only listing, decrypt, verify, sign and encrypt arguments are
               ever built; nothing imports, generates or deletes keys.
INV-DECODE-03: Input, output and signatures are never logged.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field

from pgpmime_mcp.config import Settings

logger = logging.getLogger("pgpmime-mcp.engine")

STATUS_PREFIX = "[GNUPG:] "


def parse_status(text: str) -> tuple[dict[str, list[list[str]]], str]:
    """
    Split gpg stderr into status entries and human-readable text.

    Returns ({KEYWORD: [[field, ...], ...]}, remaining_text).
    """
    status: dict[str, list[list[str]]] = {}
    other: list[str] = []
    for line in text.splitlines():
        if line.startswith(STATUS_PREFIX):
            parts = line[len(STATUS_PREFIX):].split()
            if parts:
                status.setdefault(parts[0], []).append(parts[1:])
        else:
            other.append(line)
    return status, "\n".join(other)


@dataclass
class EngineResult:
    """Outcome of one gpg invocation; the exit code is informational only."""

    returncode: int | None
    output: bytes = b""
    status: dict[str, list[list[str]]] = field(default_factory=dict)
    error_text: str = ""
    fault: Exception | None = None

    @property
    def faulted(self) -> bool:
        return self.fault is not None

    def entries(self, keyword: str) -> list[list[str]]:
        return self.status.get(keyword, [])


class GPGEngine:
    """Thin wrapper around the gpg command line."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _base_args(self) -> list[str]:
        args = [self._settings.gpg_binary, "--batch", "--no-tty", "--status-fd", "2"]
        if self._settings.gnupg_home:
            args += ["--homedir", self._settings.gnupg_home]
        return args

    def _run(self, operation: str, args: list[str], data: bytes = b"") -> EngineResult:
        command = self._base_args() + args
        try:
            completed = subprocess.run(
                command,
                input=data,
                capture_output=True,
                timeout=self._settings.engine_timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"gpg {operation} timed out after {e.timeout}s")
            return EngineResult(returncode=None, fault=e)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"gpg {operation} could not run: {e.__class__.__name__}")
            return EngineResult(returncode=None, fault=e)

        stderr = (completed.stderr or b"").decode("utf-8", errors="replace")
        status, error_text = parse_status(stderr)
        # Sizes and keywords only (INV-DECODE-03)
        logger.info(
            f"gpg {operation} exited {completed.returncode}, "
            f"{len(completed.stdout or b'')} bytes out, status={sorted(status)}"
        )
        return EngineResult(
            returncode=completed.returncode,
            output=completed.stdout or b"",
            status=status,
            error_text=error_text,
        )

    def decrypt(self, data: bytes) -> EngineResult:
        """Decrypt (or verify and unwrap a clearsigned block) via ``-d``."""
        return self._run("decrypt", ["-d"], data)

    def verify(self, data: bytes, signature: bytes) -> EngineResult:
        """
        Verify a detached signature.

        The signed bytes go to a uniquely named scratch file, the signature
        goes on stdin. The scratch file is removed on every exit path
        (INV-VERIFY-01).
        """
        try:
            handle = tempfile.NamedTemporaryFile(
                prefix="pgpmime-", suffix=".eml", dir=self._settings.scratch_dir, delete=False
            )
        except OSError as e:
            logger.error(f"Could not create scratch file: {e.__class__.__name__}")
            return EngineResult(returncode=None, fault=e)

        try:
            with handle:
                handle.write(data)
            return self._run("verify", ["--verify", "-", handle.name], signature)
        except OSError as e:
            logger.error(f"Could not write scratch file: {e.__class__.__name__}")
            return EngineResult(returncode=None, fault=e)
        finally:
            try:
                os.unlink(handle.name)
            except FileNotFoundError:
                pass

    def detach_sign(self, data: bytes, key_id: str) -> EngineResult:
        return self._run(
            "sign", ["--armor", "--local-user", key_id, "--detach-sign"], data
        )

    def encrypt(self, data: bytes, recipients: Iterable[str]) -> EngineResult:
        args = ["--encrypt", "--armor"]
        if self._settings.always_trust:
            args += ["--trust-model", "always"]
        for recipient in recipients:
            args += ["-r", recipient]
        return self._run("encrypt", args, data)

    def list_keys(self, secret: bool = False) -> EngineResult:
        listing = "--list-secret-keys" if secret else "--list-keys"
        return self._run(
            "list-keys", ["--with-colons", "--with-fingerprint", listing]
        )
