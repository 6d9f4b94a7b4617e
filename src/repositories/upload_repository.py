"""
Upload Repository for DynamoDB operations.
Handles CRUD operations and guarded status transitions for uploads.
"""
import json
from datetime import datetime
from typing import Iterable, Optional
import boto3
from botocore.exceptions import ClientError
from src.core import config
from src.core.exceptions import DynamoDBException
from src.models.upload import Upload

# Stored as JSON strings: nested lists of maps are large and schemaless
JSON_FIELDS = ('validation_results', 'processing_results')


def _build_set_expression(updates: dict):
    update_expression = "SET "
    expression_values = {}
    expression_names = {}

    for key, value in updates.items():
        if key in JSON_FIELDS and value is not None:
            value = json.dumps(value, default=str)
        elif isinstance(value, datetime):
            value = value.isoformat()
        update_expression += f"#{key} = :{key}, "
        expression_values[f":{key}"] = value
        expression_names[f"#{key}"] = key

    return update_expression.rstrip(", "), expression_names, expression_values


class UploadRepository:
    """Repository for upload DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.table = self.dynamodb.Table(config.settings.uploads_table_name)

    def create(self, upload: Upload) -> None:
        """
        Create new upload record.

        Args:
            upload: Upload domain model

        Raises:
            DynamoDBException: If create operation fails
        """
        try:
            item = {
                'upload_id': upload.upload_id,
                'status': upload.status,
                'filename': upload.filename,
                's3_key': upload.s3_key,
                'created_at': upload.created_at.isoformat(),
                'total_rows': upload.total_rows,
                'valid_rows': upload.valid_rows,
                'invalid_rows': upload.invalid_rows
            }

            if upload.environment:
                item['environment'] = upload.environment
            if upload.error_message:
                item['error_message'] = upload.error_message

            self.table.put_item(Item=item)

        except ClientError as e:
            raise DynamoDBException(f"Failed to create upload: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error creating upload: {str(e)}") from e

    def get_by_id(self, upload_id: str) -> Optional[Upload]:
        """
        Retrieve upload by ID.

        Args:
            upload_id: Upload identifier

        Returns:
            Upload object or None if not found

        Raises:
            DynamoDBException: If query fails
        """
        try:
            response = self.table.get_item(Key={'upload_id': upload_id})

            if 'Item' not in response:
                return None

            return self._item_to_upload(response['Item'])

        except ClientError as e:
            raise DynamoDBException(f"Failed to get upload: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error getting upload: {str(e)}") from e

    def update(self, upload_id: str, updates: dict) -> None:
        """
        Update upload fields.

        Args:
            upload_id: Upload identifier
            updates: Dictionary of fields to update

        Raises:
            DynamoDBException: If update operation fails
        """
        try:
            update_expression, expression_names, expression_values = _build_set_expression(updates)

            self.table.update_item(
                Key={'upload_id': upload_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=expression_names,
                ExpressionAttributeValues=expression_values
            )

        except ClientError as e:
            raise DynamoDBException(f"Failed to update upload: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error updating upload: {str(e)}") from e

    def transition_status(self, upload_id: str, from_statuses: Iterable[str], to_status: str, updates: dict = None) -> bool:
        """
        Move an upload to a new status only if it is currently in one of from_statuses.

        Returns:
            True if the transition happened, False if the current status did not match

        Raises:
            DynamoDBException: If the update fails for any other reason
        """
        from_statuses = list(from_statuses)
        fields = dict(updates or {})
        fields['status'] = to_status

        try:
            update_expression, expression_names, expression_values = _build_set_expression(fields)
            placeholders = []
            for index, status in enumerate(from_statuses):
                placeholders.append(f":from{index}")
                expression_values[f":from{index}"] = status

            self.table.update_item(
                Key={'upload_id': upload_id},
                UpdateExpression=update_expression,
                ConditionExpression=f"attribute_exists(upload_id) AND #status IN ({', '.join(placeholders)})",
                ExpressionAttributeNames=expression_names,
                ExpressionAttributeValues=expression_values
            )
            return True

        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return False
            raise DynamoDBException(f"Failed to transition upload status: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error transitioning upload status: {str(e)}") from e

    def _item_to_upload(self, item: dict) -> Upload:
        """Convert DynamoDB item to Upload domain model."""
        completed_at = item.get('processing_completed_at')
        return Upload(
            upload_id=item['upload_id'],
            status=item['status'],
            filename=item['filename'],
            s3_key=item['s3_key'],
            created_at=datetime.fromisoformat(item['created_at']),
            total_rows=int(item.get('total_rows', 0)),
            valid_rows=int(item.get('valid_rows', 0)),
            invalid_rows=int(item.get('invalid_rows', 0)),
            headers=list(item.get('headers') or []),
            missing_columns=list(item.get('missing_columns') or []),
            validation_results=self._load_json(item.get('validation_results')) or [],
            processing_results=self._load_json(item.get('processing_results')),
            processing_completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            environment=item.get('environment'),
            error_message=item.get('error_message')
        )

    @staticmethod
    def _load_json(value):
        if value is None or not isinstance(value, str):
            return value
        return json.loads(value)
