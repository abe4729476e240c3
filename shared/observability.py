"""
Observability for the Members Access Layer.
Ties structured logs, Prometheus metrics and span events together.
"""

from typing import Optional, Any, Dict

from .logging import configure_logging, get_logger, set_request_id, set_customer_context, clear_context
from .metrics import get_metrics_collector
from .tracing import configure_tracing, add_span_attributes, add_span_event


def _span_safe(values: Dict[str, Any]) -> Dict[str, Any]:
    safe = {}
    for key, value in values.items():
        if value is None or isinstance(value, (str, bool, int, float)):
            safe[key] = value
        else:
            safe[key] = str(value)
    return safe


class ObservabilityManager:
    """Centralized observability manager for services."""

    def __init__(self, service_name: str, log_level: str = "info",
                 otel_exporter: Optional[str] = None, enable_tracing: bool = False,
                 enable_console: bool = False):
        self.service_name = service_name
        self.log_level = log_level

        configure_logging(service_name, log_level)
        if enable_tracing:
            configure_tracing(service_name, otel_exporter, enable_console)
        self.metrics = get_metrics_collector(service_name)

        self.logger = get_logger(f"{service_name}.observability")
        self.logger.info("Observability initialized",
                         log_level=log_level,
                         tracing_enabled=enable_tracing)

    def trace_request(self, request_id: Optional[str] = None, email: Optional[str] = None):
        """Set up request context for logs and spans."""
        request_id = set_request_id(request_id)
        set_customer_context(email)
        add_span_attributes(request_id=request_id, customer_email=email)
        return request_id

    def clear_request_context(self):
        clear_context()

    def log_business_event(self, event_type: str, **kwargs):
        """Log business event with full context."""
        self.logger.info("Business event", event_type=event_type, **kwargs)
        self.metrics.record_business_event(event_type)
        add_span_event("business_event", event_type=event_type, **_span_safe(kwargs))


def get_observability_manager(service_name: str, **kwargs) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, **kwargs)
