"""Process-wide logging setup shared by the gateway server and the CLI agent."""

import logging
import sys
from logging.handlers import RotatingFileHandler

from agent.redact import RedactingFormatter
from browserchat_cli.config import ensure_browserchat_home, get_log_dir

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def setup_logging(verbose: bool = False, log_to_file: bool = True) -> None:
    """Install console + rotating file handlers with secret redaction.

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(RedactingFormatter(_LOG_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    if log_to_file:
        ensure_browserchat_home()
        file_handler = RotatingFileHandler(
            get_log_dir() / "browserchat.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
        )
        file_handler.setFormatter(RedactingFormatter(_LOG_FORMAT))
        root.addHandler(file_handler)

    if verbose:
        logging.getLogger("openai").setLevel(logging.DEBUG)
        logging.getLogger("httpx").setLevel(logging.DEBUG)
    else:
        # Third-party clients are chatty at INFO
        for name in ("openai", "httpx", "urllib3", "stagehand"):
            logging.getLogger(name).setLevel(logging.WARNING)
