"""
S3 Repository for file storage operations.
Stores uploaded CSV files under uploads/{upload_id}/{filename}.
"""
from typing import BinaryIO
import boto3
from botocore.exceptions import ClientError
from src.core import config
from src.core.exceptions import S3Exception


def build_s3_key(upload_id: str, filename: str) -> str:
    return f"uploads/{upload_id}/{filename}"


class S3Repository:
    """Repository for S3 file operations."""

    def __init__(self):
        self.s3_client = boto3.client('s3', region_name=config.settings.aws_region)
        self.bucket_name = config.settings.s3_bucket_name

    def upload_file(self, file: BinaryIO, s3_key: str) -> dict:
        """
        Upload a file to S3.

        Args:
            file: File object to upload
            s3_key: Destination object key

        Returns:
            dict: Upload metadata including s3_key and location

        Raises:
            S3Exception: If upload fails
        """
        try:
            self.s3_client.upload_fileobj(
                file,
                self.bucket_name,
                s3_key,
                ExtraArgs={'ContentType': 'text/csv'}
            )

            return {
                's3_key': s3_key,
                's3_location': f"s3://{self.bucket_name}/{s3_key}",
                'bucket': self.bucket_name
            }

        except ClientError as e:
            raise S3Exception(f"Failed to upload file to S3: {str(e)}") from e
        except Exception as e:
            raise S3Exception(f"Unexpected error during S3 upload: {str(e)}") from e

    def put_text(self, s3_key: str, text: str) -> dict:
        """
        Overwrite an upload's CSV with edited content.

        Raises:
            S3Exception: If the write fails
        """
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=text.encode('utf-8'),
                ContentType='text/csv; charset=utf-8'
            )
        except ClientError as e:
            raise S3Exception(f"Failed to rewrite {s3_key}: {str(e)}") from e
        return {'s3_key': s3_key, 's3_location': f"s3://{self.bucket_name}/{s3_key}"}

    def get_file(self, s3_key: str) -> bytes:
        """
        Read an uploaded CSV.

        Raises:
            S3Exception: If the object is missing or cannot be read
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=s3_key)
            return response['Body'].read()
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                raise S3Exception(f"Uploaded file {s3_key} no longer exists") from e
            raise S3Exception(f"Failed to retrieve file from S3: {str(e)}") from e
