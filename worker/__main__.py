"""
Worker 진입점

실행 방법:
    python -m worker
"""

import asyncio
import sys

from worker.bootstrap import main


def run() -> int:
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(run())
