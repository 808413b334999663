"""
StaffHub — Entry Point.

`python main.py` initialises the store, seeds default levels and reports
channel status.
"""

import logging

from staffhub.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from staffhub.bootstrap import main

if __name__ == "__main__":
    main()
