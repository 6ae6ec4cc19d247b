import asyncio
import logging
import os
import time

from dotenv import load_dotenv

from core.database import init_db
from worker.sweeps import expire_offers, time_out_requests

# Load `.env` for local/dev runs (override=True so updates take effect after restart).
load_dotenv(override=True)

# -------- CONFIG --------
OFFER_SWEEP_INTERVAL = int(os.getenv("OFFER_SWEEP_INTERVAL", "60"))  # seconds
REQUEST_TIMEOUT_INTERVAL = int(os.getenv("REQUEST_TIMEOUT_INTERVAL", "900"))  # seconds
RUN_ONCE = os.getenv("RUN_ONCE", "false").lower() == "true"
# ------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("worker")

SWEEPS = [
    ("expire-offers", expire_offers, OFFER_SWEEP_INTERVAL),
    ("request-timeout", time_out_requests, REQUEST_TIMEOUT_INTERVAL),
]


def run_due(last_run: dict, now: float) -> list[str]:
    """
    Run every sweep whose interval has elapsed since its last run.
    A failing sweep is logged and retried on its next interval.
    Returns the names of the sweeps that were attempted.
    """
    attempted = []
    for name, sweep, interval in SWEEPS:
        previous = last_run.get(name)
        if previous is not None and now - previous < interval:
            continue
        last_run[name] = now
        attempted.append(name)
        try:
            result = sweep()
            log.info("Sweep finished", extra={"sweep": name, **result})
        except Exception as e:
            log.exception("Sweep failed", extra={"sweep": name, "error": str(e)})
    return attempted


async def main():
    init_db()
    last_run: dict = {}

    while True:
        run_due(last_run, time.monotonic())

        if RUN_ONCE:
            break

        await asyncio.sleep(min(interval for _, _, interval in SWEEPS))


if __name__ == "__main__":
    asyncio.run(main())
