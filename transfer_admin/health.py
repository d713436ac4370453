"""
Health check endpoints for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import psutil
from .logging import get_logger
from .services.transfer import TransferTokenService

logger = get_logger()


class HealthChecker:
    """
    Health checker for the transfer admin service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service handle traffic?)
    """

    def __init__(
        self,
        token_service: TransferTokenService,
        service_name: str = "transfer-admin",
        version: str = "0.1.0",
    ):
        self.token_service = token_service
        self.service_name = service_name
        self.version = version

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
        }

    def readiness(self) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Token salt configuration
        - Token store reachability
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "token_salt": self._check_salt(),
            "token_store": self._check_store(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }

        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
            "checks": checks,
        }

    def _check_salt(self) -> Dict[str, Any]:
        """
        Check that access keys can be hashed.

        A missing salt is only an error while data transfer is enabled.
        """
        if self.token_service.disabled:
            return {
                "status": "skipped",
                "message": "Data transfer disabled",
            }

        if self.token_service.has_valid_salt():
            return {"status": "ok"}

        return {
            "status": "error",
            "error": "Transfer token salt is not configured",
        }

    def _check_store(self) -> Dict[str, Any]:
        try:
            healthy = self.token_service.store.health_check()
        except Exception as e:
            logger.warning("token_store_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

        return {"status": "ok" if healthy else "error"}

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
