"""
Shared utilities for the Premium Access service.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: Data factories and in-memory collaborators for tests

Do not import from service_* packages into shared/ except in test_helpers,
which builds domain fixtures.
"""
