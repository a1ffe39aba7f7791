import asyncio
import logging
from typing import Awaitable, TypeVar
from starlette.types import Receive
from clinic_gateway.core.errors import ClientDisconnected

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _wait_for_disconnect(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


async def cancel_on_disconnect(receive: Receive, work: Awaitable[T]) -> T:
    """
    Runs ``work`` while listening for the client to disconnect.

    Must only be called once the request body has been fully consumed. If the
    client goes away first, ``work`` is cancelled and ClientDisconnected is
    raised.
    """
    work_task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(receive))
    try:
        done, _ = await asyncio.wait({work_task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work_task.cancel()
        watcher.cancel()
        raise

    if work_task in done:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
        return work_task.result()

    work_task.cancel()
    await asyncio.gather(work_task, return_exceptions=True)
    if watcher.exception() is not None:
        raise watcher.exception()
    logger.info("Client disconnected, cancelled backend request")
    raise ClientDisconnected()
