"""Logging setup and small helpers."""

import logging
import os
from pathlib import Path

import coloredlogs


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: Path | None = None,
    clear_log_file=True,
) -> logging.Logger:
    """Set up coloured log output.

    - Level comes from `LOG_LEVEL` environment variable, falling back to `default_log_level`
    - Tune down noisy dependency library logging

    :param log_file:
        Output both console and this log file.
        The file is always written at least at INFO level.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert isinstance(numeric_level, int), f"No log level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-30s %(levelname)-8s %(message)s"
    date_fmt = "%H:%M:%S"

    coloredlogs.install(level=numeric_level, fmt=fmt, datefmt=date_fmt)

    root = logging.getLogger()

    if log_file:
        assert isinstance(log_file, Path), "log_file must be a Path"
        log_file.parent.mkdir(parents=True, exist_ok=True)

        min_level = min(logging.INFO, numeric_level)
        file_handler = logging.FileHandler(log_file, mode="w" if clear_log_file else "a", encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))
        root.setLevel(min_level)
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("xmento.token").setLevel(logging.WARNING)
    return root
