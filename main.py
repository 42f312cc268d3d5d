"""
Booking System Pro entry point.

Runs the offline console demo. Background tasks (deferred sheet syncs,
stuck-lead reaping, termination purging) have no process of their own:
they run inside the application process through
``AppContext.start_worker()``, against the same store as the requests.

Usage:
    Console mode: python main.py console
"""

import logging
import sys

logger = logging.getLogger(__name__)


def _run_console_mode() -> None:
    """Start the offline console demo (no webhook or database required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] != "console":
        logger.error("Unknown mode %r, expected 'console'", sys.argv[1])
        sys.exit(2)
    _run_console_mode()
