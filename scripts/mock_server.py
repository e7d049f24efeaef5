#!/usr/bin/env python3
# Local Mock Server
# Usage: python scripts/mock_server.py

"""
Runs the mock protocol server on the host/port from the client config so
main.py and scripts/test_connection.py can be tried without the real server.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulseclient.testing.mock_server import MockServer
from pulseclient.utils.config import load_config


async def main():
    server_config = load_config()['server']
    server = MockServer(host=server_config['host'], port=server_config['port'])
    await server.serve_forever()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nMock server stopped")
