"""Logging setup for the ``prelude`` command line."""

from __future__ import annotations

import logging

QUIET_LOGGERS: tuple[str, ...] = ("watchdog",)


def configure_logging(*, verbose: bool = False, force: bool = False) -> None:
    """Configure the root logger for CLI output.

    ``verbose`` lowers the level to DEBUG. Third-party loggers listed in
    ``QUIET_LOGGERS`` stay at WARNING either way. Pass ``force=True`` to
    replace handlers installed earlier (tests, repeated entry points).
    """

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
