#!/usr/bin/env python3
"""
Entrypoint for the Coachly background worker service.

This script starts the ARQ worker that generates courses, renders PDFs
and releases coach requests. Equivalent to:

    arq app.workers.arq_tasks.WorkerSettings
"""

import logging

from arq import run_worker

from app.core.logging_config import setup_logging
from app.workers.arq_tasks import WorkerSettings

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point for worker service."""
    setup_logging()
    logger.info("Starting Coachly worker...")
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
