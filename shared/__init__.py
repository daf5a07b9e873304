"""
Shared utilities for the Performance Optimization service.

This package holds the building blocks the service is assembled from:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
