import asyncio
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .utilities import STATUS_HOST


def create_status_app(client) -> FastAPI:
    app = FastAPI(title=f"pubsub-archiver {client.client_type}")

    # -------------- REST endpoints --------------
    @app.get("/health")
    async def rest_health():
        return client.health()

    @app.get("/stats")
    async def rest_stats():
        return client.stats()

    return app


class StatusServer:
    '''Runs the status app inside the client's own event loop.'''

    def __init__(self, client, port: int, host: str = STATUS_HOST):
        config = uvicorn.Config(create_status_app(client), host=host, port=port,
                                log_config=None, lifespan="off")
        self.server = uvicorn.Server(config)
        self.task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self.server.serve())
        return self.task

    async def stop(self):
        if self.task is None:
            return
        self.server.should_exit = True
        await self.task
        self.task = None
