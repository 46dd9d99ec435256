"""
PGP/MIME MCP Server
===================

MIME structural engine plus an OpenPGP/MIME decode, verify, sign and encrypt
boundary backed by GnuPG, exposed to agents over MCP.
"""

__version__ = "0.1.0"

from pgpmime_mcp.config import Settings, get_settings
from pgpmime_mcp.decoder import GPGDecoder
from pgpmime_mcp.encoder import GPGEncoder
from pgpmime_mcp.engine import EngineResult, GPGEngine
from pgpmime_mcp.handler import MessageSecurityHandler
from pgpmime_mcp.keys import GPGKeyStore, KeyManager
from pgpmime_mcp.mime import MimePart, PartIterator
from pgpmime_mcp.mime_writer import MimeWriter
from pgpmime_mcp.server import PGPMimeMCPServer, create_server, get_server

__all__ = [
    "PGPMimeMCPServer",
    "get_server",
    "create_server",
    "MessageSecurityHandler",
    "GPGDecoder",
    "GPGEncoder",
    "GPGEngine",
    "EngineResult",
    "GPGKeyStore",
    "KeyManager",
    "MimePart",
    "PartIterator",
    "MimeWriter",
    "Settings",
    "get_settings",
]
