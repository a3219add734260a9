import logging

_QUIET_PATHS: tuple[str, ...] = ("/healthz", "/readyz")


class HealthEndpointFilter(logging.Filter):
    """Drop successful health probe access lines.

    Works for both the Django dev server ("GET /healthz HTTP/1.1" 200 15) and
    gunicorn's access format. Failed probes are kept so outages stay visible.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if not any(f" {path} " in message or f" {path}?" in message for path in _QUIET_PATHS):
            return True
        return " 200 " not in message
