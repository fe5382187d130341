"""Deployment environment resolution and per-stage guards.

``APP_ENV`` takes precedence over ``NODE_ENV``; values outside the known
set fall through to the next source, and the default is ``development``.
"""

from __future__ import annotations

from typing import Literal

from city_sync.errors import EnvironmentGuardError

Environment = Literal["development", "staging", "production"]

KNOWN_ENVIRONMENTS: tuple[Environment, ...] = ("development", "staging", "production")


def _normalize(value: str | None) -> Environment | None:
    if not value:
        return None
    candidate = value.strip().lower()
    for env in KNOWN_ENVIRONMENTS:
        if candidate == env:
            return env
    return None


def resolve_environment(app_env: str | None = None, node_env: str | None = None) -> Environment:
    """Resolve the environment from ``APP_ENV`` / ``NODE_ENV`` values."""
    return _normalize(app_env) or _normalize(node_env) or "development"


def require_non_production(environment: Environment, stage: str) -> None:
    """Refuse to run a destructive stage against production."""
    if environment == "production":
        raise EnvironmentGuardError(f"{stage} must not run against the production environment")


def require_production(environment: Environment, stage: str) -> None:
    """Refuse to run a production-only stage anywhere else."""
    if environment != "production":
        raise EnvironmentGuardError(
            f"{stage} must run in production context, received: {environment}"
        )
