import logging
from typing import Optional

LOGGER_NAME = "comptamatch"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if name:
        return root.getChild(name)
    return root


def configure_level(level: str) -> None:
    get_logger().setLevel(getattr(logging, level.upper(), logging.INFO))
