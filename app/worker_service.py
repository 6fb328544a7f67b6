"""Cloud Run service entrypoint for the cascade worker."""

from __future__ import annotations

import asyncio
import contextlib
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.worker import worker_loop

_worker_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global _worker_task
    _worker_task = asyncio.create_task(worker_loop())
    try:
        yield
    finally:
        _worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _worker_task
        _worker_task = None


app = FastAPI(lifespan=lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "worker_running": bool(_worker_task and not _worker_task.done())}


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    # nosec B104 - Cloud Run requires binding to all interfaces.
    uvicorn.run("app.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
