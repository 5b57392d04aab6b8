import logging

from rich.logging import RichHandler


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging with a rich handler at the given level."""
    log_level = level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(name)s - %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger(__name__).debug("Logging configured with level: %s", log_level)
