"""Backend launcher: ``python -m druid.run``."""
import asyncio
import os
import sys

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "druid.main:app",
        host=os.environ.get("DRUID_HOST", "127.0.0.1"),
        port=int(os.environ.get("DRUID_PORT", "8765")),
    )
