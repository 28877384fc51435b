# inventory_ledger/batch/nightly_job.py
from datetime import datetime
from typing import Dict, Optional

from inventory_ledger.config import config
from inventory_ledger.db import session_scope
from inventory_ledger.services.reorder_service import ReorderService
from inventory_ledger.services.reporting_service import ReportingService
from inventory_ledger.logging_setup import get_logger, log_exception, logger as log_manager

logger = get_logger('nightly_job')

def run_reorder_evaluation() -> Dict:
    """Evaluate every active product and refresh reorder alerts.

    Returns:
        Dictionary with evaluation results
    """
    logger.info("Running reorder evaluation")

    with session_scope() as session:
        reorder_service = ReorderService(session)
        results = reorder_service.evaluate_all()

    results['success'] = results['errors'] == 0
    return results

def summarize_expiring_batches(days: Optional[int] = None) -> Dict:
    """Log batches with stock that expire soon.

    Args:
        days: Look-ahead in days; defaults to BATCH_PROCESS.expiry_warning_days
    """
    if days is None:
        days = config.batch_config['expiry_warning_days']
    logger.info(f"Checking batches expiring within {days} days")

    with session_scope() as session:
        report = ReportingService(session).expiring_batches_report(days=days)

    summary = report['summary']
    if summary['expired_units']:
        logger.warning(f"{summary['expired_units']} expired units still on hand")

    return {
        'success': True,
        'batches': summary['batches'],
        'expired_units': summary['expired_units'],
        'expiring_units': summary['expiring_units']
    }

def run_nightly_job() -> Dict:
    """Run the nightly job.

    Returns:
        Dictionary with job results
    """
    log_info = log_manager.batch_start_log('nightly_job')

    results = {
        'start_time': log_info['start_time'],
        'end_time': None,
        'duration': None,
        'processes': {}
    }

    try:
        logger.info("# Step 1: Evaluate reorder alerts")
        results['processes']['reorder_evaluation'] = run_reorder_evaluation()

        logger.info("# Step 2: Check expiring batches")
        results['processes']['expiring_batches'] = summarize_expiring_batches()

        results['success'] = all(
            process.get('success', False) for process in results['processes'].values()
        )
    except Exception as e:
        log_exception('nightly_job', e, "Error during nightly job")
        results['success'] = False
        results['error'] = str(e)

    results['end_time'] = datetime.now()
    results['duration'] = log_manager.batch_end_log(
        log_info,
        success=results['success'],
        result_info=results['processes']
    )

    return results

if __name__ == "__main__":
    run_nightly_job()
