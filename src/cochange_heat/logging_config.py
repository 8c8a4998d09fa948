"""
Logging configuration for cochange-heat.

Records from every ``cochange_heat.*`` logger go to stderr through rich,
and to a plain-text file as well when the ``log_file`` setting is given.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "cochange_heat"

# EngineConfig.verbosity -> level
LEVELS = {
    "quiet": logging.ERROR,
    "normal": logging.WARNING,
    "verbose": logging.DEBUG,
}

_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(verbosity: str = "normal", log_file: Optional[str] = None) -> logging.Logger:
    """
    Install handlers on the ``cochange_heat`` logger.

    Handlers from an earlier call are closed and replaced, so the CLI can be
    invoked repeatedly in one process without duplicating output. The root
    logger is left alone.

    Args:
        verbosity: One of ``quiet``, ``normal`` or ``verbose``
        log_file: Optional file that receives the same records; its parent
                  directory is created when missing

    Returns:
        The configured ``cochange_heat`` logger
    """
    if verbosity not in LEVELS:
        raise ValueError(f"verbosity must be quiet/normal/verbose, got '{verbosity}'")
    level = LEVELS[verbosity]
    verbose = verbosity == "verbose"

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # markup off: messages carry bracketed paths and group keys
    logger.addHandler(
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            tracebacks_show_locals=verbose,
            markup=False,
            show_path=verbose,
        )
    )

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``cochange_heat`` namespace; the namespace root when ``name`` is None."""
    if name is None:
        return logging.getLogger(ROOT_LOGGER)

    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)
