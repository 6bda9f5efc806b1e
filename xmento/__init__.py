"""xmento package root.

Multi-vault stablecoin custody with yield seeking rebalancing.

- :py:mod:`xmento.factory` creates and indexes vaults, and upgrades the registry logic in place
- :py:mod:`xmento.vault` tracks deposit positions and reallocates them across the supported stablecoins
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    # https://stackoverflow.com/a/1093331/315168
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"xmento needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
