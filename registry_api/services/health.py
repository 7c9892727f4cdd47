# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Reports the health of the record store, the session cache and the change
notification broker.
"""

import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from opentelemetry import trace

from .mongodb import MongoDBService
from .redis import RedisService
from .amqp import AMQPService

tracer = trace.get_tracer(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthCheckService:
    """Service for dependency health monitoring."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        amqp_service: Optional[AMQPService] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.amqp_service = amqp_service
        self.config = config or {}

    def get_health(self) -> Dict[str, Any]:
        """Health of every dependency plus an overall status."""
        with tracer.start_as_current_span("health.check") as span:
            start_time = time.time()

            dependencies = {
                "mongodb": self._check_mongodb_health(),
                "redis": self._check_redis_health(),
                "amqp": self._check_amqp_health()
            }
            overall_status = self._determine_overall_status(dependencies)
            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                **{f"health.{name}_status": info["status"] for name, info in dependencies.items()}
            })

            return {
                "status": overall_status,
                "service": "civil-registry-api",
                "version": self.config.get("SERVICE_VERSION", "1.0.0"),
                "environment": self.config.get("ENVIRONMENT", "development"),
                "timestamp": _now_iso(),
                "response_time_ms": response_time_ms,
                "dependencies": dependencies,
                "feature_flags": {
                    "docs_enabled": bool(self.config.get("DOCS_ENABLED", True)),
                    "otel_enabled": bool(self.config.get("OTEL_ENABLED", True))
                }
            }

    def _check_mongodb_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            result = self.mongodb_service.health_check()
            result["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
            result["last_check"] = _now_iso()
            span.set_attribute("mongodb.status", result["status"])
            return result

    def _check_redis_health(self) -> Dict[str, Any]:
        if self.redis_service is None:
            return {"status": "not_configured", "last_check": _now_iso()}
        with tracer.start_as_current_span("health.redis_check") as span:
            result = self.redis_service.health_check()
            result["last_check"] = _now_iso()
            span.set_attribute("redis.status", result["status"])
            return result

    def _check_amqp_health(self) -> Dict[str, Any]:
        if self.amqp_service is None:
            return {"status": "not_configured", "last_check": _now_iso()}
        with tracer.start_as_current_span("health.amqp_check") as span:
            start_time = time.time()
            is_healthy = self.amqp_service.health_check()
            status = "healthy" if is_healthy else "unhealthy"
            span.set_attribute("amqp.status", status)
            return {
                "status": status,
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "last_check": _now_iso()
            }

    def _determine_overall_status(self, dependencies: Dict[str, Dict[str, Any]]) -> str:
        """
        The record store is required; the cache and the broker only degrade
        the service when they are configured but failing.
        """
        if dependencies["mongodb"]["status"] != "healthy":
            return "unhealthy"

        optional = [
            info["status"] for name, info in dependencies.items()
            if name != "mongodb" and info["status"] != "not_configured"
        ]
        if all(status == "healthy" for status in optional):
            return "healthy"
        return "degraded"
