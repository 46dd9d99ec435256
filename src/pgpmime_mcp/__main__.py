"""Entry point: ``pgpmime-mcp`` / ``python -m pgpmime_mcp``."""

import asyncio
import logging

from pgpmime_mcp.config import get_settings
from pgpmime_mcp.server import get_server


def main() -> None:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    asyncio.run(get_server().run())


if __name__ == "__main__":
    main()
