"""
credbroker.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation for the sidecar's HTTP endpoints.
"""

# Package marker.
