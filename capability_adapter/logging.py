import logging, sys

from .middleware.correlation import CorrelationIdFilter


def setup_logging(level: str = "INFO") -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_capability_adapter", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] [rid=%(request_id)s cid=%(correlation_id)s] %(message)s"
        ))
        handler.addFilter(CorrelationIdFilter())
        handler._capability_adapter = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return logging.getLogger("capability_adapter")
