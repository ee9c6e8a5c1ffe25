import logging
import os
import structlog
import sys
from pathlib import Path
from dotenv import load_dotenv

def setup_logging(service_name: str | None = None):
    """Route structlog events as JSON lines through the stdlib root logger.

    LOG_LEVEL controls stdout verbosity; LOG_ERROR_FILE, when set, also
    collects ERROR and above (failed ingests land there with their context).
    """
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    error_log_path = os.getenv("LOG_ERROR_FILE", "").strip()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    formatter = logging.Formatter("%(message)s")
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(log_level)
    stdout.setFormatter(formatter)
    root.addHandler(stdout)

    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        errors = logging.FileHandler(error_log_path)
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        root.addHandler(errors)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    )
    structlog.contextvars.clear_contextvars()
    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)
