"""
Tasks service.
CRUD over an in-memory task collection behind an origin gate, an API-key
check, a request logger and a per-client sliding-window rate limiter.
"""

import time
from typing import Any, List, Optional

from fastapi import Body, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.clock import Clock
from shared.config import BaseConfig, get_config
from shared.errors import ErrorResponse, InvalidArgument, TasksServiceError
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

from .pipeline import RequestPipelineMiddleware, build_stages
from .ratelimit.sliding_window import SlidingWindowRateLimiter
from .store.models import DeletedCount, Task, TaskCreate, TaskUpdate, demo_tasks
from .store.task_store import TaskStore

SERVICE_NAME = "tasks"


class TasksService:
    """Tasks service implementation."""

    def __init__(
        self,
        config: Optional[BaseConfig] = None,
        store: Optional[TaskStore] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or get_config()
        configure_logging(SERVICE_NAME, self.config.log_level)
        self.logger = get_logger(f"{SERVICE_NAME}.service")
        self.metrics = get_metrics_collector(SERVICE_NAME)
        self.clock = clock or Clock()
        self._start_time = time.time()

        if store is None:
            store = TaskStore(demo_tasks() if self.config.seed_demo_tasks else None)
        self.store = store
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            window_seconds=self.config.rate_limit_window_seconds,
            max_requests=self.config.rate_limit_max_requests,
            clock=self.clock,
        )
        self.metrics.set_task_count(self.store.count())

        self.app = FastAPI(
            title="Tasks API",
            description="Task CRUD behind origin, API-key and rate-limit gates",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )

        self._setup_routes()
        self._setup_exception_handlers()
        self._setup_middleware()

        self.app.state.tasks_service = self

        self.logger.info(
            "Tasks service initialized",
            tasks=self.store.count(),
            trusted_port=self.config.trusted_port,
            rate_limit=self.config.rate_limit_max_requests,
            window_seconds=self.config.rate_limit_window_seconds,
        )

    def _record_mutation(self, event_type: str, message: str, **fields: Any) -> None:
        self.metrics.record_business_event(event_type)
        self.metrics.set_task_count(self.store.count())
        self.logger.info(message, **fields)

    def _setup_routes(self):
        """Set up API routes."""

        @self.app.get("/", response_class=PlainTextResponse)
        async def root():
            return "Esta es la API de tareas"

        @self.app.get("/tareas", response_model=List[Task])
        async def list_tasks():
            """List every task in insertion order."""
            return self.store.list()

        @self.app.post("/tareas", response_model=Task, status_code=status.HTTP_201_CREATED)
        async def create_task(payload: Optional[TaskCreate] = Body(None)):
            """Create a task from a raw title."""
            payload = payload or TaskCreate()
            task = self.store.create(payload.title, completed=payload.completed)
            self._record_mutation("task_created", "Task created", task_id=task.id, title=task.title)
            return task

        # Registered before /tareas/{task_id} so "completed" is not read as an id.
        @self.app.delete("/tareas/completed", response_model=DeletedCount)
        async def delete_completed_tasks():
            """Remove every completed task."""
            removed = self.store.delete_completed()
            self._record_mutation("tasks_completed_deleted", "Completed tasks deleted", removed=removed)
            return DeletedCount(eliminadas=removed)

        @self.app.put("/tareas/{task_id}", response_model=Task)
        async def update_task(task_id: str, payload: Optional[TaskUpdate] = Body(None)):
            """Update title and/or completion flag."""
            task = self.store.get_by_id_param(task_id)
            changes = payload or TaskUpdate()
            updated = self.store.update(task.id, title=changes.title, completed=changes.completed)
            self._record_mutation(
                "task_updated",
                "Task updated",
                task_id=updated.id,
                title_changed=changes.title is not None and changes.title != task.title,
                completed=updated.completed,
            )
            return updated

        @self.app.delete("/tareas/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_task(task_id: str):
            """Delete a single task."""
            task = self.store.get_by_id_param(task_id)
            self.store.delete(task.id)
            self._record_mutation("task_deleted", "Task deleted", task_id=task.id)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "service": SERVICE_NAME,
                "status": "ok",
                "uptime_seconds": time.time() - self._start_time,
                "tasks": self.store.count(),
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):
        """Render every error as {"error": message}."""

        @self.app.exception_handler(TasksServiceError)
        async def tasks_error_handler(request: Request, exc: TasksServiceError):
            self.logger.warning(
                "Request failed",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                method=request.method,
                path=request.url.path,
            )
            self.metrics.record_error(exc.code)
            return exc.to_json_response()

        @self.app.exception_handler(RequestValidationError)
        async def validation_error_handler(request: Request, exc: RequestValidationError):
            error = InvalidArgument(
                "Cuerpo de la petición inválido",
                details={"errors": exc.errors()},
            )
            self.logger.warning(
                "Invalid request body",
                method=request.method,
                path=request.url.path,
                errors=len(exc.errors()),
            )
            self.metrics.record_error(error.code)
            return error.to_json_response()

        @self.app.exception_handler(StarletteHTTPException)
        async def http_error_handler(request: Request, exc: StarletteHTTPException):
            # Blocked verbs never reach the router; any other verb without a
            # handler is treated as an unknown route.
            if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
                return JSONResponse(
                    status_code=status.HTTP_404_NOT_FOUND,
                    content=ErrorResponse(error="Not Found").model_dump(),
                )
            return JSONResponse(
                status_code=exc.status_code,
                content=ErrorResponse(error=str(exc.detail)).model_dump(),
                headers=getattr(exc, "headers", None),
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error="Error interno del servidor").model_dump(),
            )

    def _setup_middleware(self):
        """Install the request pipeline."""
        self.stages = build_stages(
            trusted_port=self.config.trusted_port,
            api_key=self.config.api_key,
            rate_limiter=self.rate_limiter,
            clock=self.clock,
        )
        self.app.add_middleware(RequestPipelineMiddleware, stages=self.stages, metrics=self.metrics)

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def create_app(config: Optional[BaseConfig] = None) -> FastAPI:
    """Create FastAPI application."""
    service = TasksService(config)
    return service.app


if __name__ == "__main__":
    service = TasksService()
    service.run()
