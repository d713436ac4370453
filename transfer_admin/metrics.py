"""
Prometheus metrics for the transfer admin service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the transfer admin service.
    """

    def __init__(self, service_name: str = "transfer-admin", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics - transfer token lifecycle
        self.token_operations_total = Counter(
            "transfer_token_operations_total",
            "Transfer token operations by outcome",
            ["operation", "outcome"],
            registry=self.registry,
        )

        self.tokens_active = Gauge(
            "transfer_tokens_active",
            "Number of stored transfer tokens",
            registry=self.registry,
        )

        self.salt_configured = Gauge(
            "transfer_token_salt_configured",
            "Whether the transfer token salt is configured (1=yes, 0=no)",
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        process = psutil.Process(os.getpid())

        memory_info = process.memory_info()
        self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

        # num_fds() is not available on all platforms
        if hasattr(process, "num_fds"):
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())

    def record_token_operation(self, operation: str, outcome: str = "success"):
        """Record a transfer token operation (create, update, revoke, ...)."""
        self.token_operations_total.labels(operation=operation, outcome=outcome).inc()

    def set_active_tokens(self, count: int):
        """Set the number of stored tokens."""
        self.tokens_active.set(count)

    def set_salt_configured(self, configured: bool):
        self.salt_configured.set(1 if configured else 0)
