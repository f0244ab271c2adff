import logging
from pathlib import Path
from typing import Optional
from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

def setup_logging(log_dir: Optional[Path], debug: bool = False, console: bool = True) -> logging.Logger:
    """Configures the root logger: a file log in log_dir plus an optional rich console handler."""
    level = logging.DEBUG if debug else logging.INFO
    handlers = []
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "vjoin.log")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)
    if console:
        handlers.append(RichHandler(level=level, show_path=False, rich_tracebacks=True))

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("vjoin")

class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the job id."""

    def __init__(self, logger: logging.Logger, job_id: str):
        super().__init__(logger, {"job_id": job_id})

    def process(self, msg, kwargs):
        return f"[{self.extra['job_id']}] {msg}", kwargs
