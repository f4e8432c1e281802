"""
Request pipeline for the tasks service.

Every request walks the same ordered list of stages before it may reach a
route handler:

    origin gate -> credential gate -> logger -> rate limiter -> method blocklist

A stage rejects by raising a ``TasksServiceError``; the first rejection is
rendered as the response and no later stage, nor any handler, runs.
"""

import math
from time import perf_counter
from typing import Dict, Iterable, List, Optional, Sequence

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.clock import Clock, format_log_time
from shared.errors import MethodNotAllowed, TasksServiceError, TooManyRequests
from shared.logging import clear_context, get_logger, set_client_context, set_request_id
from shared.metrics import MetricsCollector

from .gate.access import AccessContext, check_credential, check_origin
from .ratelimit.sliding_window import SlidingWindowRateLimiter

BLOCKED_METHODS = ("PATCH", "OPTIONS")
UNMATCHED_ENDPOINT = "unmatched"


def _access_context(request: Request) -> AccessContext:
    context = getattr(request.state, "access_context", None)
    if context is None:
        context = AccessContext.from_request(request)
        request.state.access_context = context
    return context


def _endpoint_label(request: Request) -> str:
    """Route template for matched requests, a fixed label otherwise."""
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED_ENDPOINT)


def client_id_for(request: Request) -> str:
    """Rate-limit bucket key: remote address only, ports share a bucket."""
    return request.client.host if request.client else "unknown"


class PipelineStage:
    """One gate in the request pipeline."""

    name = "stage"

    def check(self, request: Request) -> None:
        raise NotImplementedError

    def rejection_headers(self, request: Request, exc: TasksServiceError) -> Dict[str, str]:
        return {}

    def decorate(self, request: Request, response: Response) -> None:
        """Adjust the handler's response after the request passed every stage."""


class OriginGate(PipelineStage):
    name = "origin"

    def __init__(self, trusted_port: int):
        self.trusted_port = trusted_port

    def check(self, request: Request) -> None:
        check_origin(_access_context(request), self.trusted_port)


class CredentialGate(PipelineStage):
    name = "credential"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def check(self, request: Request) -> None:
        check_credential(_access_context(request), self.api_key)


class RequestLogger(PipelineStage):
    """Logs method, URL and arrival time of requests that passed the gates."""

    name = "logger"

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.logger = get_logger("tasks.requests")

    def check(self, request: Request) -> None:
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        set_client_context(client_id_for(request))
        self.logger.info(
            "Request received",
            method=request.method,
            url=url,
            received_at=format_log_time(self.clock.now()),
        )


class RateLimitGate(PipelineStage):
    name = "rate_limit"

    def __init__(self, rate_limiter: SlidingWindowRateLimiter):
        self.rate_limiter = rate_limiter

    def check(self, request: Request) -> None:
        client_id = client_id_for(request)
        if not self.rate_limiter.admit(client_id):
            raise TooManyRequests(details={"client_id": client_id})

    def rejection_headers(self, request: Request, exc: TasksServiceError) -> Dict[str, str]:
        retry_after = self.rate_limiter.retry_after(client_id_for(request))
        return {
            "Retry-After": str(max(1, math.ceil(retry_after))),
            "X-RateLimit-Limit": str(self.rate_limiter.max_requests),
            "X-RateLimit-Remaining": "0",
        }

    def decorate(self, request: Request, response: Response) -> None:
        remaining = self.rate_limiter.remaining(client_id_for(request))
        response.headers["X-RateLimit-Limit"] = str(self.rate_limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)


class MethodBlocklist(PipelineStage):
    name = "method_blocklist"

    def __init__(self, methods: Iterable[str] = BLOCKED_METHODS):
        self.methods = frozenset(method.upper() for method in methods)

    def check(self, request: Request) -> None:
        if request.method.upper() in self.methods:
            raise MethodNotAllowed(details={"method": request.method})


def build_stages(
    trusted_port: int,
    api_key: str,
    rate_limiter: SlidingWindowRateLimiter,
    clock: Optional[Clock] = None,
) -> List[PipelineStage]:
    """Stages in their fixed evaluation order."""
    return [
        OriginGate(trusted_port),
        CredentialGate(api_key),
        RequestLogger(clock),
        RateLimitGate(rate_limiter),
        MethodBlocklist(),
    ]


class RequestPipelineMiddleware(BaseHTTPMiddleware):
    """Runs the pipeline stages in order, then the router."""

    def __init__(self, app, stages: Sequence[PipelineStage], metrics: MetricsCollector):
        super().__init__(app)
        self.stages = list(stages)
        self.metrics = metrics
        self.logger = get_logger("tasks.pipeline")

    async def dispatch(self, request: Request, call_next):
        start_time = perf_counter()
        request_id = set_request_id(
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
        )

        try:
            response = self._run_stages(request)
            if response is None:
                response = await call_next(request)
                for stage in self.stages:
                    stage.decorate(request, response)

            duration = perf_counter() - start_time
            endpoint = _endpoint_label(request)
            self.metrics.record_http_request(request.method, endpoint, response.status_code, duration)

            response.headers["X-Process-Time"] = f"{duration:.6f}"
            response.headers["X-Request-Id"] = request_id
            return response
        finally:
            clear_context()

    def _run_stages(self, request: Request) -> Optional[Response]:
        for stage in self.stages:
            try:
                stage.check(request)
            except TasksServiceError as exc:
                self.metrics.record_rejection(stage.name, exc.status_code)
                self.logger.debug(
                    "Request rejected",
                    stage=stage.name,
                    status_code=exc.status_code,
                    code=exc.code,
                )
                return exc.to_json_response(headers=stage.rejection_headers(request, exc))
        return None
