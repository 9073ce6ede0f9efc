"""Command line interface for running the API server."""
import asyncio
import logging
import os
import signal

import uvicorn

from database import init_db, close as db_close

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

server = None
should_exit = False

def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    global should_exit
    logger.info("Shutdown signal received. Cleaning up...")
    should_exit = True

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 8000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level="info"
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server in a way that can be stopped."""
        await self.server.serve()

    async def stop(self):
        """Stop the server."""
        self.server.should_exit = True

async def main():
    """Initialize the store and run the API server until a shutdown signal."""
    global server, should_exit

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        logger.info("Initializing database...")
        await init_db()

        server = UvicornServer(
            host=os.environ.get('MARKET_HOST', '0.0.0.0'),
            port=int(os.environ.get('MARKET_PORT', '8000'))
        )
        task = asyncio.create_task(server.run(), name="api")
        logger.info("API server started")

        while not should_exit and not task.done():
            await asyncio.sleep(1)

        if task.done() and not task.cancelled() and task.exception():
            logger.error(f"API server failed with error: {task.exception()}")

        logger.info("Starting cleanup...")
        await server.stop()
        await task

    except Exception as e:
        logger.error(f"Fatal error: {e}")
    finally:
        logger.info("Closing database connections...")
        await db_close()
        logger.info("Cleanup complete.")

if __name__ == "__main__":
    asyncio.run(main())
