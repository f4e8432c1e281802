"""
Tasks service package.

Exposes CRUD over an in-memory task list ("tareas") behind a fixed request
pipeline: origin gate, API-key gate, request logger, sliding-window rate
limiter and method blocklist.

Structure:
- app.main: FastAPI app, routes and exception handlers.
- app.pipeline: Ordered request stages and the middleware that runs them.
- app.gate: Origin and credential predicates.
- app.ratelimit: Per-client sliding-window limiter.
- app.store: Task models and the lock-guarded store.
"""
