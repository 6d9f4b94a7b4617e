"""
API Failure Repository for DynamoDB operations.
Failure records are never deleted; status changes go through conditional updates.
"""
import json
from datetime import datetime
from typing import Iterable, List, Optional
import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from src.core import config
from src.core.exceptions import DynamoDBException
from src.models.failure_record import FailureRecord

JSON_FIELDS = ('request_body', 'error_details')


def _to_attribute(key: str, value):
    if value is None:
        return None
    if key in JSON_FIELDS:
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class FailureRepository:
    """Repository for API failure DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.table = self.dynamodb.Table(config.settings.failures_table_name)

    def create(self, failure: FailureRecord) -> None:
        """
        Create a failure record.

        Raises:
            DynamoDBException: If create operation fails
        """
        try:
            item = {}
            for key, value in vars(failure).items():
                attribute = _to_attribute(key, value)
                if attribute is not None:
                    item[key] = attribute
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(failure_id)'
            )
        except ClientError as e:
            raise DynamoDBException(f"Failed to create API failure: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error creating API failure: {str(e)}") from e

    def get_by_id(self, failure_id: str) -> Optional[FailureRecord]:
        try:
            response = self.table.get_item(Key={'failure_id': failure_id}, ConsistentRead=True)
            if 'Item' not in response:
                return None
            return self._item_to_failure(response['Item'])
        except ClientError as e:
            raise DynamoDBException(f"Failed to get API failure: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error getting API failure: {str(e)}") from e

    def update(self, failure_id: str, updates: dict, expected_statuses: Iterable[str] = None) -> bool:
        """
        Update failure fields, optionally only while retry_status is one of expected_statuses.

        Returns:
            True if updated, False if the status condition did not hold

        Raises:
            DynamoDBException: If the update fails for any other reason
        """
        set_parts = []
        remove_parts = []
        names = {}
        values = {}
        for key, value in updates.items():
            names[f"#{key}"] = key
            attribute = _to_attribute(key, value)
            if attribute is None:
                remove_parts.append(f"#{key}")
            else:
                set_parts.append(f"#{key} = :{key}")
                values[f":{key}"] = attribute

        update_expression = ""
        if set_parts:
            update_expression += "SET " + ", ".join(set_parts)
        if remove_parts:
            update_expression += " REMOVE " + ", ".join(remove_parts)

        kwargs = {
            'Key': {'failure_id': failure_id},
            'UpdateExpression': update_expression.strip(),
            'ExpressionAttributeNames': names,
        }
        condition = "attribute_exists(failure_id)"
        if expected_statuses is not None:
            names["#retry_status"] = "retry_status"
            placeholders = []
            for index, status in enumerate(expected_statuses):
                placeholders.append(f":expected{index}")
                values[f":expected{index}"] = status
            condition += f" AND #retry_status IN ({', '.join(placeholders)})"
        kwargs['ConditionExpression'] = condition
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            self.table.update_item(**kwargs)
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return False
            raise DynamoDBException(f"Failed to update API failure: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error updating API failure: {str(e)}") from e

    def claim_for_retry(self, failure_id: str, from_statuses: Iterable[str], to_status: str, now: datetime) -> bool:
        """Atomically move a record into the retrying state; False if another caller holds it."""
        return self.update(
            failure_id,
            {'retry_status': to_status, 'last_retry_at': now, 'updated_at': now},
            expected_statuses=list(from_statuses)
        )

    def scan(
        self,
        statuses: Iterable[str] = None,
        upload_id: str = None,
        environment: str = None
    ) -> List[FailureRecord]:
        """
        Scan failure records matching the given filters.

        Raises:
            DynamoDBException: If scan fails
        """
        condition = None
        filters = []
        if statuses is not None:
            filters.append(Attr('retry_status').is_in(list(statuses)))
        if upload_id:
            filters.append(Attr('upload_id').eq(upload_id))
        if environment:
            filters.append(Attr('environment').eq(environment))
        for f in filters:
            condition = f if condition is None else condition & f

        scan_kwargs = {}
        if condition is not None:
            scan_kwargs['FilterExpression'] = condition

        try:
            items = []
            while True:
                response = self.table.scan(**scan_kwargs)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
            return [self._item_to_failure(item) for item in items]
        except ClientError as e:
            raise DynamoDBException(f"Failed to scan API failures: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error scanning API failures: {str(e)}") from e

    def _item_to_failure(self, item: dict) -> FailureRecord:
        """Convert DynamoDB item to FailureRecord domain model."""
        def parse_time(key):
            value = item.get(key)
            return datetime.fromisoformat(value) if value else None

        def parse_json(key):
            value = item.get(key)
            return json.loads(value) if isinstance(value, str) else value

        def parse_int(key):
            value = item.get(key)
            return int(value) if value is not None else None

        return FailureRecord(
            failure_id=item['failure_id'],
            endpoint=item['endpoint'],
            method=item['method'],
            environment=item['environment'],
            created_at=parse_time('created_at'),
            request_body=parse_json('request_body'),
            status_code=parse_int('status_code'),
            error_code=item.get('error_code'),
            error_message=item.get('error_message'),
            error_details=parse_json('error_details'),
            upload_id=item.get('upload_id'),
            package_id=item.get('package_id'),
            external_id=item.get('external_id'),
            row_number=parse_int('row_number'),
            retry_count=int(item.get('retry_count', 0)),
            max_retries=int(item.get('max_retries', 3)),
            retry_status=item['retry_status'],
            next_retry_at=parse_time('next_retry_at'),
            last_retry_at=parse_time('last_retry_at'),
            resolved_at=parse_time('resolved_at'),
            resolution_notes=item.get('resolution_notes'),
            updated_at=parse_time('updated_at')
        )
