"""
Ordered request guards.

Every request passes through the guards in list order before it reaches a
route. A guard's ``check`` returns None to continue or a response to reject
the request; once the route has answered, the ``after`` hooks of all guards
that ran are applied in reverse order. CORS wraps the whole chain as the
outermost middleware, so the effective order is CORS -> session -> CSRF ->
route.
"""

import logging
from typing import List, Optional, Protocol, Sequence
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from authgate.api.cookies import SessionCookies

logger = logging.getLogger(__name__)


class Guard(Protocol):
    name: str

    def check(self, request: Request) -> Optional[Response]:
        ...

    def after(self, request: Request, response: Response) -> None:
        ...


class SessionGuard:
    """Loads the session cookies into ``request.state.session``. Never rejects."""

    name = "session"

    def check(self, request: Request) -> Optional[Response]:
        request.state.session = SessionCookies.from_request(request)
        return None

    def after(self, request: Request, response: Response) -> None:
        return None


class GuardChain:
    def __init__(self, guards: Sequence[Guard]):
        self.guards: List[Guard] = list(guards)

    @property
    def names(self) -> List[str]:
        return [guard.name for guard in self.guards]

    async def run(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        passed: List[Guard] = []
        for guard in self.guards:
            rejection = guard.check(request)
            if rejection is not None:
                logger.debug(f"Guard '{guard.name}' rejected {request.method} {request.url.path}")
                return rejection
            passed.append(guard)

        response = await call_next(request)
        for guard in reversed(passed):
            guard.after(request, response)
        return response


class GuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, chain: GuardChain):
        super().__init__(app)
        self.chain = chain

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        return await self.chain.run(request, call_next)
