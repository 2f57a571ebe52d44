"""Allow ``python -m rulex.mcp_server`` to launch the server."""

import asyncio
import sys

# Psycopg's async driver requires SelectorEventLoop on Windows.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from rulex.mcp_server.server import main

main()
