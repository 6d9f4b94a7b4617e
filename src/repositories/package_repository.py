"""
DynamoDB Repository for screened package results.
Items are append-only: one per successful screening call.
"""
import json
from datetime import datetime
from typing import List, Optional
import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from src.core import config
from src.core.exceptions import DynamoDBException
from src.models.package_result import PackageResult
from src.repositories.db_repository import DBRepository


class PackageRepository(DBRepository):
    """Repository for package result DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.table = self.dynamodb.Table(config.settings.packages_table_name)

    def save(self, package: PackageResult) -> None:
        """
        Save a package result to DynamoDB.

        Args:
            package: PackageResult domain model

        Raises:
            DynamoDBException: If save operation fails
        """
        try:
            self.table.put_item(Item=self._package_to_item(package))
        except ClientError as e:
            raise DynamoDBException(f"Failed to save package result: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error saving package result: {str(e)}") from e

    def get_by_id(self, package_id: str) -> Optional[PackageResult]:
        try:
            response = self.table.get_item(Key={'package_id': package_id})
            if 'Item' not in response:
                return None
            return self._item_to_package(response['Item'])
        except ClientError as e:
            raise DynamoDBException(f"Failed to get package result: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error getting package result: {str(e)}") from e

    def find_by_upload(self, upload_id: str) -> List[PackageResult]:
        """
        Find all package results for an upload, oldest first.

        Raises:
            DynamoDBException: If scan fails
        """
        try:
            scan_kwargs = {'FilterExpression': Attr('upload_id').eq(upload_id)}
            items = []
            while True:
                response = self.table.scan(**scan_kwargs)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

            packages = [self._item_to_package(item) for item in items]
            return sorted(packages, key=lambda p: (p.row_number or 0, p.created_at))

        except ClientError as e:
            raise DynamoDBException(f"Failed to scan package results: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error scanning package results: {str(e)}") from e

    def _package_to_item(self, package: PackageResult) -> dict:
        item = {
            'package_id': package.package_id,
            'external_id': package.external_id,
            'status': package.status,
            'screening_code': package.screening_code,
            'screening_status': package.screening_status,
            'created_at': package.created_at.isoformat(),
        }
        optional = {
            'upload_id': package.upload_id,
            'screening_id': package.screening_id,
            'house_bill_number': package.house_bill_number,
            'barcode': package.barcode,
            'platform_id': package.platform_id,
            'seller_id': package.seller_id,
            'label_qr_code': package.label_qr_code,
            'row_number': package.row_number,
            'environment': package.environment,
        }
        item.update({k: v for k, v in optional.items() if v is not None})
        if package.screening_response is not None:
            # Raw responses contain floats, which DynamoDB only accepts as Decimal
            item['screening_response'] = json.dumps(package.screening_response, default=str)
        return item

    def _item_to_package(self, item: dict) -> PackageResult:
        """Convert DynamoDB item to PackageResult domain model."""
        raw_response = item.get('screening_response')
        return PackageResult(
            package_id=item['package_id'],
            upload_id=item.get('upload_id'),
            external_id=item['external_id'],
            status=item['status'],
            screening_code=int(item['screening_code']),
            screening_status=item.get('screening_status'),
            screening_id=item.get('screening_id'),
            house_bill_number=item.get('house_bill_number'),
            barcode=item.get('barcode'),
            platform_id=item.get('platform_id'),
            seller_id=item.get('seller_id'),
            label_qr_code=item.get('label_qr_code'),
            screening_response=json.loads(raw_response) if raw_response else None,
            row_number=int(item['row_number']) if item.get('row_number') is not None else None,
            environment=item.get('environment'),
            created_at=datetime.fromisoformat(item['created_at'])
        )
