"""Shared test fixtures: a local fake APRS-IS server."""

import asyncio
import time

import pytest
import pytest_asyncio

from aprswx.aprs import ConnectionConfig

GREETING = b"# aprsc 2.1.14-g5e22b37\r\n"


class FakeAPRSServer:
    """Accepts APRS-IS clients on localhost and records what they send."""

    def __init__(self):
        self.server = None
        self.port = None
        self.writers = []
        self.connections = 0
        self.received = asyncio.Queue()

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _handle(self, reader, writer):
        self.connections += 1
        self.writers.append(writer)
        writer.write(GREETING)
        await writer.drain()
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                await self.received.put(line.decode("utf-8").rstrip("\r\n"))
        except ConnectionError:
            pass
        finally:
            writer.close()

    async def next_line(self, timeout=2.0):
        return await asyncio.wait_for(self.received.get(), timeout)

    async def send(self, data: bytes):
        """Send raw bytes to the most recent client."""
        writer = self.writers[-1]
        writer.write(data)
        await writer.drain()

    async def close_clients(self):
        for writer in self.writers:
            writer.close()

    async def stop(self):
        await self.close_clients()
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), 2.0)
        except asyncio.TimeoutError:
            pass


async def _wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest_asyncio.fixture
async def aprs_server():
    server = FakeAPRSServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def connection_config(aprs_server):
    return ConnectionConfig(
        host="127.0.0.1",
        port=aprs_server.port,
        callsign="N0CALL-13",
        passcode="12345",
        filter="r/60.2/24.6/50",
        reconnect_backoff=0.05,
    )
