"""
Entry point: serve the API and run the crawl scheduler (`--once` runs one cycle and exits).
"""
import asyncio

from worker.main import main as worker_main


if __name__ == "__main__":
    asyncio.run(worker_main())
