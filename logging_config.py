import logging
import logging.handlers
from pathlib import Path

LOG_FILE = "task_manager.log"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - uvicorn prints one access line per request; those go to the file only
    - other libraries only show warnings and up
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "uvicorn.access":
            return record.levelno >= logging.WARNING
        if record.name.split(".")[0] in {"main", "database", "uvicorn"}:
            return True
        return record.levelno >= logging.WARNING


def setup_logging(log_dir: str = "logs", log_level: str | int = logging.INFO):
    """Console and rotating file logging for the API. Call once at startup."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Drop handlers from an earlier call so records are not duplicated
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_ConsoleNoiseFilter())
    root_logger.addHandler(console_handler)

    # The file gets everything, including snapshot save tracebacks
    file_handler = logging.handlers.RotatingFileHandler(
        Path(log_dir) / LOG_FILE,
        maxBytes=2*1024*1024,  # 2MB
        backupCount=2,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    return root_logger
