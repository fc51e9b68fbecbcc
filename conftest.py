"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
large_scale
    Applied to stress tests that build trees deep enough (tens of thousands
    of nested clades) to take several seconds.  Excluded from the default
    run; opt in with ``-m large_scale``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.
"""


def pytest_configure(config):
    """
    Configure pytest before test collection begins.
    """
    config.addinivalue_line(
        "markers",
        "large_scale: stress test on very deep trees "
        "(slow; opt in with -m large_scale)",
    )
