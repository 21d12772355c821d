"""
WiZ Light Controller - Main Entry Point
"""

import asyncio
import signal
import sys
import logging
import os

from services.light_server import LightServer

logger = logging.getLogger(__name__)

async def main():
    """Main entry point"""

    # Handle graceful shutdown
    server = None
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        if server:
            loop.call_soon_threadsafe(lambda: asyncio.ensure_future(server.stop()))

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        # Get config file path from environment variable or use default
        config_path = os.environ.get('LIGHTS_CONFIG_FILE', 'config/config.yaml')
        logger.info(f"Using configuration file name from environment: {config_path}")

        server = LightServer(config_path=config_path)
        await server.run_forever()

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Controller failed: {e}")
        return 1
    finally:
        if server and server.running:
            await server.stop()

    return 0

def run():
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nController stopped by user")
        sys.exit(0)

if __name__ == "__main__":
    run()
