# toolwire/shared/context.py
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic

from typing_extensions import TypeVar

from toolwire.types import RequestId, RequestParams

if TYPE_CHECKING:
    from toolwire.server.execution import CancellationToken
    from toolwire.server.models import SessionState
    from toolwire.server.session import ServerSession

LifespanContextT = TypeVar("LifespanContextT", default=Any)


@dataclass
class RequestContext(Generic[LifespanContextT]):
    """Everything a handler may read about the request it is serving.

    `state` is the frozen server state; mutable shared data belongs in the
    lifespan context.
    """

    request_id: RequestId
    meta: RequestParams.Meta | None
    session: ServerSession | None
    lifespan_context: LifespanContextT
    state: SessionState
    category: str
    target: str
    cancellation: CancellationToken

    async def report_progress(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        """Send a progress notification if the client asked for one."""
        progress_token = self.meta.progressToken if self.meta else None
        if progress_token is None or self.session is None:
            return
        await self.session.send_progress_notification(
            progress_token=progress_token,
            progress=progress,
            total=total,
            message=message,
            related_request_id=self.request_id,
        )
