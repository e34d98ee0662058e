from __future__ import annotations

import logging
import sys

from broker.main import run
from services.listener import BrokerStartupError


def main() -> int:
    try:
        run()
    except BrokerStartupError as exc:
        logging.getLogger("broker").error("Broker failed to start: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
