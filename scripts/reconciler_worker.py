from __future__ import annotations

import asyncio

from dbforge.workers.reconciliation_worker import _main


if __name__ == "__main__":
    # Boot a dedicated reconciliation process so database status keeps moving without the API.
    asyncio.run(_main())
