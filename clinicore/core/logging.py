# clinicore/core/logging.py
import logging
import sys

from clinicore.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Root logger setup, called once from main.
    Modules only ever do `logger = logging.getLogger(__name__)`.
    """
    root = logging.getLogger()
    root.setLevel(level or settings.LOG_LEVEL)

    # uvicorn --reload imports main twice; keep a single handler
    if any(getattr(h, "_clinicore", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._clinicore = True  # type: ignore[attr-defined]
    root.addHandler(handler)
