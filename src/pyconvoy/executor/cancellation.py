"""Cooperative cancellation for running workflows.

One CancellationToken exists per workflow execution. The orchestrator
trips it on ``cancel_workflow``; workers receive it in every ``execute``
call and may poll ``is_cancelled`` or await ``wait()`` between steps.
"""

import asyncio


class CancellationToken:
    """Signal shared between an executor and the workers it dispatches.

    Example:
        async def execute(self, task, context, token):
            for chunk in chunks:
                if token.is_cancelled:
                    return WorkerResult.fail("cancelled")
                await convert(chunk)
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Trip the token. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is tripped."""
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
