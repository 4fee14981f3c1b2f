"""Shared logging helpers for Kit Porter."""

import logging


def configure_logging(verbose: bool = False, force: bool = False):
    """Initialise the root logger once with a terse CLI format.

    Args:
        verbose: Log at DEBUG instead of WARNING
        force: Replace handlers installed by an earlier call
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
