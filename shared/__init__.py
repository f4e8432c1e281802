"""
Shared utilities for the tasks access service.

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error kinds and the ``{"error": ...}`` response
- clock: Time source for log lines and rate-limit windows

Do not import from service_* packages into shared/.
"""
