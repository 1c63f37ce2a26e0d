from __future__ import annotations

import logging
import signal

from orchestrator.core.config import get_settings
from orchestrator.worker.runner import WorkerConfig, run_worker_forever


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    config = WorkerConfig.from_settings(get_settings())

    def _stop(signum, frame):  # type: ignore[no-untyped-def]
        _ = frame
        logging.getLogger("orchestrator.worker").info("stopping on signal %s", signum)
        config.stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    run_worker_forever(config=config)


if __name__ == "__main__":
    main()
