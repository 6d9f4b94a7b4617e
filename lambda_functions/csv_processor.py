"""
Lambda function to validate CSV files uploaded to S3.
Triggered by S3 ObjectCreated events on the uploads/ prefix.
"""
import json
import logging
import re
from urllib.parse import unquote_plus
from src.core.logging_config import configure_logging
from src.services.upload_service import UploadService
from src.core.exceptions import (
    CSVProcessingException,
    DynamoDBException,
    InvalidStateException,
    S3Exception,
    UploadNotFoundException,
    ValidationException
)

logger = logging.getLogger(__name__)

UPLOAD_KEY_PATTERN = re.compile(r'^uploads/([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})/')


def handler(event, context, upload_service: UploadService = None):
    """
    Lambda handler for S3 event processing.

    Args:
        event: S3 event containing bucket and object information
        context: Lambda context object

    Returns:
        dict: Per-record validation outcome
    """
    configure_logging()
    upload_service = upload_service or UploadService()
    results = []
    status_code = 200

    for record in event.get('Records', []):
        s3_key = unquote_plus(record['s3']['object']['key'])
        upload_id = _extract_upload_id(s3_key)
        if not upload_id:
            logger.warning("Ignoring object outside uploads/: %s", s3_key)
            continue

        logger.info("Validating s3://%s/%s", record['s3']['bucket']['name'], s3_key,
                    extra={"upload_id": upload_id})
        outcome, code = _validate(upload_service, upload_id)
        status_code = max(status_code, code)
        results.append(dict(outcome, upload_id=upload_id, s3_key=s3_key))

    return {
        'statusCode': status_code,
        'body': json.dumps({'results': results})
    }


def _validate(upload_service: UploadService, upload_id: str):
    try:
        result = upload_service.validate_upload(upload_id)
        return {
            'is_valid': result.is_valid,
            'total_rows': result.total_rows,
            'valid_rows': result.valid_rows,
            'invalid_rows': result.invalid_rows,
            'missing_columns': list(result.missing_columns)
        }, 200

    except (ValidationException, CSVProcessingException) as e:
        logger.info("Upload %s rejected: %s", upload_id, e.message, extra={"upload_id": upload_id})
        return {'error': 'Validation Error', 'message': e.message}, 400

    except (UploadNotFoundException, InvalidStateException) as e:
        logger.warning("Skipping upload %s: %s", upload_id, e.message, extra={"upload_id": upload_id})
        return {'error': 'Skipped', 'message': e.message}, 200

    except (S3Exception, DynamoDBException) as e:
        logger.error("Storage error validating upload %s: %s", upload_id, e.message, extra={"upload_id": upload_id})
        return {'error': 'Storage Error', 'message': e.message}, 500


def _extract_upload_id(s3_key: str):
    """
    Extract upload_id from an S3 key of the form uploads/{upload_id}/{filename}.

    Returns:
        upload_id or None if the key does not match
    """
    match = UPLOAD_KEY_PATTERN.match(s3_key)
    return match.group(1) if match else None
