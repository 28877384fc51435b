#!/usr/bin/env python
# run_nightly_job.py - Script to run the nightly job

import sys
import logging
import argparse

from inventory_ledger.batch.nightly_job import run_nightly_job
from inventory_ledger.db import db
from inventory_ledger.logging_setup import get_logger, logger as log_manager

def main():
    """Run the nightly job."""
    parser = argparse.ArgumentParser(description='Run the Inventory Ledger nightly job')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    logger = get_logger('nightly_job_runner')
    if args.verbose:
        log_manager.set_level(logging.DEBUG)

    logger.info("Starting nightly job runner...")
    db.initialize()

    try:
        results = run_nightly_job()

        if results.get('success', False):
            logger.info("Nightly job completed successfully")
            logger.info(f"Duration: {results.get('duration')}")

            for process_name, process_result in results.get('processes', {}).items():
                logger.info(f"Process '{process_name}': {process_result.get('success', False)}")

                if process_result.get('alerts_raised'):
                    logger.info(f"  Alerts raised: {process_result.get('alerts_raised')}")

                if process_result.get('expiring_units'):
                    logger.info(f"  Units expiring soon: {process_result.get('expiring_units')}")

            return 0
        else:
            logger.error(f"Nightly job failed: {results.get('error', 'see process results')}")
            return 1

    except Exception as e:
        logger.exception(f"Error running nightly job: {str(e)}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
