"""
Lambda function that retries due API failures.
Triggered on a fixed schedule by an EventBridge rule.
"""
import json
import logging
from src.core.logging_config import configure_logging
from src.services.retry_scheduler import RetryScheduler
from src.core.exceptions import DynamoDBException

logger = logging.getLogger(__name__)


def handler(event, context, scheduler: RetryScheduler = None):
    """
    Run one retry pass over failures whose next_retry_at has passed.

    Returns:
        dict: Retry counts for this run
    """
    configure_logging()
    scheduler = scheduler or RetryScheduler()

    try:
        summary = scheduler.run_once()
    except DynamoDBException as e:
        logger.error("Scheduled retry aborted: %s", e.message)
        return {
            'statusCode': 500,
            'body': json.dumps({'error': 'Database Error', 'message': e.message})
        }

    return {
        'statusCode': 200,
        'body': json.dumps({
            'total': summary.total,
            'successful': summary.successful,
            'failed': summary.failed
        })
    }
