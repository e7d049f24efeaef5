#!/usr/bin/env python3
# Test Server Connection
# Usage: python scripts/test_connection.py

"""
Connection Smoke Test Script

Tests:
1. Login to the configured server
2. Heartbeat keeps the connection alive
3. count and time requests
4. Graceful logout

Run scripts/mock_server.py first to test against a local server.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulseclient.connection.connection_manager import ConnectionManager
from pulseclient.connection.errors import LoginError, RequestError
from pulseclient.utils.config import load_config
from pulseclient.utils.logger import setup_logger

# Setup logger
logger = setup_logger("TestConnection", "INFO")


class ConnectionTester:
    """Smoke test a ConnectionManager against a live server"""

    def __init__(self, config: dict):
        server = config['server']
        self.client = ConnectionManager(
            host=server['host'],
            port=server['port'],
            login_name=server['login_name'],
            id_tag=server['id_tag']
        )

    async def test_login(self) -> bool:
        """Test login"""
        logger.info("=" * 60)
        logger.info("TEST 1: Login")
        logger.info("=" * 60)

        try:
            info = await self.client.login()
        except LoginError as e:
            logger.error(f"Login failed: {e}")
            return False

        logger.info(f"Logged in as {info.login_name} at {info.host}:{info.port}")
        logger.info(f"   State: {self.client.get_state()}")
        return True

    async def test_heartbeat(self):
        """Test heartbeat watchdog"""
        logger.info("")
        logger.info("=" * 60)
        logger.info("TEST 2: Heartbeat")
        logger.info("=" * 60)
        logger.info("Waiting 10 seconds to observe heartbeats...")

        await asyncio.sleep(10)

        stats = self.client.get_stats()
        logger.info(f"Heartbeats received: {stats['heartbeats']}, resets: {stats['resets']}")
        if self.client.is_logged_in():
            logger.info("Still logged in after 10s")
        else:
            logger.error("Not logged in after heartbeat test")

    async def test_requests(self):
        """Test count and time requests"""
        logger.info("")
        logger.info("=" * 60)
        logger.info("TEST 3: Requests")
        logger.info("=" * 60)

        try:
            count = await self.client.get_request_count()
            logger.info(f"Request count: {count}")
            server_time = await self.client.get_time()
            logger.info(f"Server time: {server_time.time}, random: {server_time.random}")
        except RequestError as e:
            logger.error(f"Request failed: {e}")

    async def test_logout(self):
        """Test logout"""
        logger.info("")
        logger.info("=" * 60)
        logger.info("TEST 4: Logout")
        logger.info("=" * 60)

        info = await self.client.logout()
        logger.info(f"Logged out, logged_in={info.logged_in}, state={self.client.get_state()}")

    async def run_all_tests(self):
        try:
            if not await self.test_login():
                logger.error("Login test failed. Aborting.")
                return
            await self.test_heartbeat()
            await self.test_requests()
        finally:
            await self.test_logout()

        logger.info("")
        logger.info("=" * 60)
        logger.info("TEST SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Stats: {self.client.get_stats()}")


async def main():
    tester = ConnectionTester(load_config())
    await tester.run_all_tests()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nGoodbye!")
