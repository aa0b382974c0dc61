"""
Taskboard - Entry Point.

Single entry point: `python main.py` starts the reminder worker.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from taskboard.worker import main

if __name__ == "__main__":
    main()
