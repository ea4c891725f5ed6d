"""
Health checks in the "Health Check Response Format for HTTP APIs" draft shape

Liveness, readiness (database, disk, memory), startup (migrations applied)
and a lightweight process metrics endpoint.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from typing import Dict, Any
import os
import time
from datetime import datetime, timezone
from enum import Enum
import psutil
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _component(status_val, component_type: str, **fields: Any) -> Dict[str, Any]:
    return {"status": status_val, "componentType": component_type, **fields, "time": _now()}


def _graded(value: float, fail_below: float, warn_below: float) -> "HealthStatus":
    if value < fail_below:
        return HealthStatus.FAIL
    if value < warn_below:
        return HealthStatus.WARN
    return HealthStatus.PASS


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


class ServiceHealth:
    """Builds the health router for one service bound to its database engine"""

    def __init__(self, service_name: str, version: str, engine: Engine):
        self.service_name = service_name
        self.version = version
        self.engine = engine
        self.start_time = time.time()
        self.checks_performed = 0
        self.last_check_time = None

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            """Liveness probe used by load balancers, no dependency checks"""
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now()
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        async def readiness() -> JSONResponse:
            """Readiness probe: database, disk and memory"""
            checks = self.perform_readiness_checks()
            overall_status = self.calculate_overall_status(checks)
            status_code = (
                status.HTTP_503_SERVICE_UNAVAILABLE
                if overall_status == HealthStatus.FAIL
                else status.HTTP_200_OK
            )

            response = {
                "status": overall_status,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "checks": checks,
                "serviceId": self.service_name,
                "description": f"{self.service_name} service",
                "timestamp": _now()
            }
            return JSONResponse(status_code=status_code, content=response)

        @router.get("/health/startup")
        async def startup() -> JSONResponse:
            """Startup probe: schema present and migrations recorded"""
            checks = {"database:migrations": self.check_migrations()}
            status_val = self.calculate_overall_status(checks)

            if status_val == HealthStatus.FAIL:
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={"status": "starting", "checks": checks}
                )
            return JSONResponse(content={"status": "started", "checks": checks})

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()

            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads()
                }
            }

        return router

    def perform_readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        self.last_check_time = time.time()

        return {
            "database:connectivity": self.check_database(),
            "storage:disk_space": self._check_disk_space(),
            "system:memory": self._check_memory(),
        }

    def check_database(self) -> Dict[str, Any]:
        try:
            started = time.perf_counter()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return _component(HealthStatus.FAIL, "datastore", output=str(e))
        elapsed_ms = (time.perf_counter() - started) * 1000
        return _component(HealthStatus.PASS, "datastore", observedValue=f"{elapsed_ms:.2f}", observedUnit="ms")

    def check_migrations(self) -> Dict[str, Any]:
        try:
            tables = set(inspect(self.engine).get_table_names())
        except Exception as e:
            return _component(HealthStatus.FAIL, "datastore", output=str(e))

        if "alembic_version" in tables:
            return _component(HealthStatus.PASS, "datastore")
        if {"products", "inventory_transactions"} <= tables:
            # Created by metadata.create_all rather than alembic
            return _component(HealthStatus.WARN, "datastore", output="Schema present but migrations table not found")
        return _component(HealthStatus.FAIL, "datastore", output="Schema not initialized")

    def _check_disk_space(self) -> Dict[str, Any]:
        try:
            free_gb = psutil.disk_usage('/').free / (1024 ** 3)
        except Exception as e:
            return _component(HealthStatus.WARN, "system", output=str(e))
        return _component(
            _graded(free_gb, fail_below=1, warn_below=5), "system",
            observedValue=f"{free_gb:.2f}", observedUnit="GB"
        )

    def _check_memory(self) -> Dict[str, Any]:
        try:
            available_mb = psutil.virtual_memory().available / (1024 ** 2)
        except Exception as e:
            return _component(HealthStatus.WARN, "system", output=str(e))
        return _component(
            _graded(available_mb, fail_below=100, warn_below=500), "system",
            observedValue=f"{available_mb:.2f}", observedUnit="MB"
        )

    @staticmethod
    def calculate_overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = {check.get("status", HealthStatus.PASS) for check in checks.values()}
        for worst in (HealthStatus.FAIL, HealthStatus.WARN):
            if worst in statuses:
                return worst
        return HealthStatus.PASS
