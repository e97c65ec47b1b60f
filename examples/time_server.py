# examples/time_server.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import anyio
from pydantic import BaseModel

# --- toolwire imports ---
from toolwire.server import HandlerError, NotificationOptions, Server
from toolwire.shared.context import RequestContext


# ---------------------------
# Shared state (lifespan)
# ---------------------------
@dataclass
class Clock:
    """Mutable data shared by handlers; guarded by its own lock."""

    calls: int = 0
    lock: anyio.Lock = field(default_factory=anyio.Lock)


@asynccontextmanager
async def clock_lifespan(_: Server[Clock]) -> AsyncIterator[Clock]:
    yield Clock()


server = Server(
    "time-server",
    version="0.1.0",
    instructions="Tells the time and counts how often it was asked.",
    lifespan=clock_lifespan,
    notification_options=NotificationOptions(tools_changed=True),
    resources_subscribe=True,
)


# ---------------------------
# Tools
# ---------------------------
class Stats(BaseModel):
    calls: int
    uptime_seconds: float


@server.tool(arguments=[{"name": "format", "type": "string", "default": "RFC3339", "description": "RFC3339 or Unix"}])
async def get_time(ctx: RequestContext[Clock], args: dict[str, Any]) -> str:
    """Current UTC time."""
    async with ctx.lifespan_context.lock:
        ctx.lifespan_context.calls += 1
    now = datetime.now(timezone.utc)
    match args["format"]:
        case "RFC3339":
            return now.isoformat()
        case "Unix":
            return str(int(now.timestamp()))
        case other:
            raise HandlerError(f"Unknown format: {other}")


@server.tool(
    output_schema={
        "type": "object",
        "properties": {"calls": {"type": "integer"}, "uptime_seconds": {"type": "number"}},
        "required": ["calls", "uptime_seconds"],
    }
)
def stats(ctx: RequestContext[Clock], args: dict[str, Any]) -> Stats:
    """How often get_time was called and how long the server has been up."""
    return Stats(calls=ctx.lifespan_context.calls, uptime_seconds=ctx.state.uptime().total_seconds())


@server.tool(arguments=[{"name": "seconds", "type": "number", "required": True}])
async def countdown(ctx: RequestContext[Clock], args: dict[str, Any]) -> str:
    """Count down, reporting progress once per second. Stops early when cancelled."""
    total = int(args["seconds"])
    for done in range(total):
        ctx.cancellation.raise_if_cancelled()
        await ctx.report_progress(done, total=total)
        with anyio.move_on_after(1):
            await ctx.cancellation.wait()
    return "liftoff"


# ---------------------------
# Resources and prompts
# ---------------------------
@server.resource("time://zones", mime_type="application/json")
def zones(ctx: RequestContext[Clock], args: dict[str, Any]) -> dict[str, str]:
    return {"UTC": "+00:00"}


@server.prompt(arguments=[{"name": "city", "type": "string", "required": True}])
def meeting(ctx: RequestContext[Clock], args: dict[str, Any]) -> str:
    """Ask for a meeting time."""
    return f"What time is a good meeting time in {args['city']}?"


# ---------------------------
# Entrypoint
# ---------------------------

if __name__ == "__main__":
    # Run with stdio
    server.run_stdio()
