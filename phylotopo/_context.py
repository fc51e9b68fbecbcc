"""
_context.py
===========
Context managers for phylotopo.

Provides clean, Pythonic context managers for temporarily changing logging
state.  All context managers restore state on exit, even if exceptions occur.
"""

import logging
from contextlib import contextmanager


#: Name of the package logger; every module logger is a child of it.
PACKAGE_LOGGER = "phylotopo"


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Useful for silencing construction warnings from a specific module, e.g.
    duplicate-name or missing-branch-length warnings while bulk-loading
    trees.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g. 'phylotopo._tree').
    level : int, default logging.CRITICAL
        Temporary logging level.

    Yields
    ------
    None
        Control is yielded back to the with-block.

    Examples
    --------
    >>> with suppress_logger('phylotopo._logging'):
    ...     trees = [Tree(nwk) for nwk in newicks]

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all phylotopo logging.

    Convenience wrapper around :func:`suppress_logger` for the package logger,
    which every module logger inherits its effective level from.

    Parameters
    ----------
    level : int, default logging.CRITICAL
        Temporary logging level for the package logger.

    Examples
    --------
    >>> with quiet():
    ...     tree = Tree("((A,B),(C:1,D:1));")

    >>> # Show only warnings
    >>> with quiet(logging.WARNING):
    ...     tree = Tree(newick)
    """
    with suppress_logger(PACKAGE_LOGGER, level):
        yield
