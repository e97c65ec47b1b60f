# tests/conftest.py
import logging
import pytest
import anyio

from toolwire.server.lowlevel.server import Server

# ------------------------------------------------------------------------------
# 1. Global Configuration
# ------------------------------------------------------------------------------

@pytest.fixture(scope="session")
def anyio_backend():
    """
    Tells pytest to use 'asyncio' as the backend for anyio tests.
    toolwire relies on anyio for every concurrency primitive it uses.
    """
    return "asyncio"


@pytest.fixture(autouse=True)
def setup_test_logging(caplog):
    """
    Automatically captures logging at DEBUG level for every test.
    If a test fails, pytest will show the logs (dispatch is logged at debug level).
    """
    caplog.set_level(logging.DEBUG)


# ------------------------------------------------------------------------------
# 2. Shared Transport Fixtures
# ------------------------------------------------------------------------------

@pytest.fixture
async def memory_channel_pair():
    """
    Creates a bidirectional memory stream pair for testing the session layer.

    This fixture creates two pairs of streams to simulate a full-duplex
    connection. It uses a generator with a teardown phase to ensure that all
    streams are closed properly after a test, preventing hangs.

    Yields:
        tuple: A pair of tuples for client and server sides:
               `((client_read, client_write), (server_read, server_write))`
    """
    # Stream A: Traffic going TO the Server (Client writes, Server reads)
    client_write, server_read = anyio.create_memory_object_stream(100)

    # Stream B: Traffic going TO the Client (Server writes, Client reads)
    server_write, client_read = anyio.create_memory_object_stream(100)

    client_side = (client_read, client_write)
    server_side = (server_read, server_write)

    yield client_side, server_side

    # Teardown: Close all streams to ensure any background tasks listening on them
    # can exit gracefully. The timeout prevents tests from blocking indefinitely.
    with anyio.move_on_after(1, shield=True):
        await client_write.aclose()
        await server_write.aclose()
        await client_read.aclose()
        await server_read.aclose()


# ------------------------------------------------------------------------------
# 3. Server Fixtures
# ------------------------------------------------------------------------------

@pytest.fixture
def server():
    """
    A bare server with short timeouts so that timing-based tests stay fast.
    """
    return Server(
        "unit-test-server",
        version="0.1.0",
        admission_timeout=0.2,
        call_timeout=0,
        cancel_grace=0.5,
    )
