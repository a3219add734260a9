from __future__ import annotations

import os

# Run from the repository root: gunicorn -c gunicorn.conf.py
chdir = "univote_app"
wsgi_app = "config.wsgi:application"

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("GUNICORN_WORKERS", "3"))
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))

accesslog = "-"
errorlog = "-"
capture_output = True
loglevel = os.getenv("LOG_LEVEL", "info").lower()
forwarded_allow_ips = "*"
access_log_format = '%({x-forwarded-for}i)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s %(M)sms "%(a)s"'

logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        # Probes hit /healthz and /readyz every few seconds.
        "health_probe": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "access": {"format": "%(message)s"},
        "server": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "access_stream": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "access",
            "filters": ["health_probe"],
        },
        "server_stream": {
            "class": "logging.StreamHandler",
            "formatter": "server",
        },
    },
    "loggers": {
        "gunicorn.access": {
            "handlers": ["access_stream"],
            "level": "INFO",
            "propagate": False,
        },
        "gunicorn.error": {
            "handlers": ["server_stream"],
            "level": loglevel.upper(),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["server_stream"],
        "level": loglevel.upper(),
    },
}
