"""
PGP/MIME MCP Server
===================

MCP server exposing the message security handler as tools.

Message bytes cross the tool boundary base64-encoded; every tool calls
exactly one handler operation.

CONSTITUTIONAL INVARIANTS ENFORCED:
- INV-DECODE-03: No logging of message bodies, plaintext or signatures
- INV-ENCODE-01: Encoding faults come back as result fields, not exceptions
- INV-GLOBAL-03: Keys are listed only; no import, generate or delete tools
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import asdict
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from contracts import InvalidMessageError, MessageSecurityError, OutgoingMessage
from pgpmime_mcp.config import Settings, get_settings
from pgpmime_mcp.handler import MessageSecurityHandler

# Configure logging to NEVER include message content (INV-DECODE-03)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("pgpmime-mcp")

_MESSAGE_PROPERTY = {
    "type": "string",
    "description": "Complete RFC 822 message, base64-encoded",
}


def decode_message_argument(value: str) -> bytes:
    """Base64 tool argument -> message bytes."""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise InvalidMessageError() from e


class PGPMimeMCPServer:
    """
    PGP/MIME MCP Server - decode, verify, sign and encrypt mail for agents.

    This class intentionally does NOT implement (adversarial test targets):
    - key import, generation or deletion (INV-GLOBAL-03)
    """

    def __init__(
        self,
        handler: MessageSecurityHandler | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._handler = handler
        self._server = Server("pgpmime-mcp")
        self._setup_tools()

    @property
    def handler(self) -> MessageSecurityHandler:
        if self._handler is None:
            self._handler = MessageSecurityHandler.from_settings(self._settings)
            logger.info(f"Using gpg binary {self._settings.gpg_binary}")
        return self._handler

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name="pgp_should_handle",
                    description="Check whether a received message carries PGP content",
                    inputSchema={
                        "type": "object",
                        "properties": {"message": _MESSAGE_PROPERTY},
                        "required": ["message"],
                    },
                ),
                Tool(
                    name="pgp_decode",
                    description="Decrypt and/or verify a received message",
                    inputSchema={
                        "type": "object",
                        "properties": {"message": _MESSAGE_PROPERTY},
                        "required": ["message"],
                    },
                ),
                Tool(
                    name="pgp_encoding_status",
                    description="Report whether a draft can be signed and/or encrypted",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "sender": {
                                "type": "string",
                                "description": "From address",
                            },
                            "recipients": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "All recipient addresses",
                            },
                        },
                        "required": ["sender", "recipients"],
                    },
                ),
                Tool(
                    name="pgp_encode",
                    description="Sign and/or encrypt an outgoing message as PGP/MIME",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "message": _MESSAGE_PROPERTY,
                            "sender": {
                                "type": "string",
                                "description": "From address",
                            },
                            "recipients": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "All recipient addresses",
                            },
                            "sign": {
                                "type": "boolean",
                                "description": "Sign with the sender's key",
                                "default": False,
                            },
                            "encrypt": {
                                "type": "boolean",
                                "description": "Encrypt to every recipient with a key",
                                "default": False,
                            },
                        },
                        "required": ["message", "sender", "recipients"],
                    },
                ),
                Tool(
                    name="pgp_list_keys",
                    description="List keys in the keyring with their capabilities",
                    inputSchema={
                        "type": "object",
                        "properties": {},
                    },
                ),
            ]

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            try:
                if name == "pgp_should_handle":
                    result = self.pgp_should_handle(**arguments)
                elif name == "pgp_decode":
                    result = self.pgp_decode(**arguments)
                elif name == "pgp_encoding_status":
                    result = self.pgp_encoding_status(**arguments)
                elif name == "pgp_encode":
                    result = self.pgp_encode(**arguments)
                elif name == "pgp_list_keys":
                    result = self.pgp_list_keys()
                else:
                    return [TextContent(type="text", text=f"Unknown tool: {name}")]

                return [TextContent(type="text", text=self._serialize_result(result))]

            except MessageSecurityError as e:
                return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

    def pgp_should_handle(self, *, message: str) -> dict:
        """Implements DecodeContract.should_handle."""
        data = decode_message_argument(message)
        return {"should_handle": self.handler.should_handle(data)}

    def pgp_decode(self, *, message: str) -> Any:
        """
        Implements DecodeContract.decode.

        INV-DECODE-01: The result always carries message bytes.
        """
        data = decode_message_argument(message)
        # Log size only, NEVER content (INV-DECODE-03)
        logger.info(f"Decoding {len(data)} byte message")
        return self.handler.decode(data)

    def pgp_encoding_status(self, *, sender: str, recipients: list[str]) -> Any:
        """Implements EncodeContract.encoding_status."""
        logger.info(f"Encoding status for {len(recipients)} recipients")
        return self.handler.encoding_status(sender, recipients)

    def pgp_encode(
        self,
        *,
        message: str,
        sender: str,
        recipients: list[str],
        sign: bool = False,
        encrypt: bool = False,
    ) -> Any:
        """Implements EncodeContract.encode."""
        data = decode_message_argument(message)
        logger.info(f"Encoding {len(data)} byte message: sign={sign}, encrypt={encrypt}")
        return self.handler.encode(
            OutgoingMessage(raw=data, sender=sender, recipients=list(recipients)),
            should_sign=sign,
            should_encrypt=encrypt,
        )

    def pgp_list_keys(self) -> dict:
        """Read-only keyring listing (INV-GLOBAL-03)."""
        keys = sorted(self.handler.key_manager.all_keys(), key=lambda k: k.fingerprint)
        return {"keys": keys}

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""

        def default_serializer(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            if isinstance(obj, bytes):
                return base64.b64encode(obj).decode("ascii")
            if isinstance(obj, Exception):
                return {
                    "code": getattr(obj, "code", obj.__class__.__name__),
                    "message": str(obj),
                }
            if hasattr(obj, "value"):  # Enum
                return obj.value
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2)

    async def run(self) -> None:
        """Run the MCP server."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )


# Singleton for process lifetime
_server_instance: PGPMimeMCPServer | None = None


def get_server() -> PGPMimeMCPServer:
    """Get or create the server singleton."""
    global _server_instance
    if _server_instance is None:
        _server_instance = PGPMimeMCPServer()
    return _server_instance


def create_server(
    handler: MessageSecurityHandler | None = None,
    settings: Settings | None = None,
) -> PGPMimeMCPServer:
    """Create a new server instance (for testing)."""
    return PGPMimeMCPServer(handler=handler, settings=settings)
