"""
Secrets for the pipeline held in SSM Parameter Store.

Two SecureString parameters live under /customs-pipeline/<environment>/:
jwt-secret signs the API bearer tokens and screening-api-key authenticates
calls to the customs screening API. Values are cached per process, so a
rotated secret takes effect on the next cold start.
"""
import boto3
from functools import lru_cache

PARAMETER_PREFIX = "/customs-pipeline"
JWT_SECRET = "jwt-secret"
SCREENING_API_KEY = "screening-api-key"


def parameter_path(environment: str, name: str) -> str:
    """Full parameter name of a pipeline secret, e.g. /customs-pipeline/dev/screening-api-key."""
    return f"{PARAMETER_PREFIX}/{environment}/{name}"


@lru_cache(maxsize=10)
def get_secret(environment: str, name: str, region: str = "us-east-1") -> str:
    """
    Fetch and decrypt one pipeline secret.

    Args:
        environment: Deployment environment (dev, staging, prod)
        name: Secret name, JWT_SECRET or SCREENING_API_KEY
        region: AWS region of the parameter

    Returns:
        Decrypted parameter value

    Raises:
        botocore.exceptions.ClientError: If the parameter is missing or not readable
    """
    ssm = boto3.client('ssm', region_name=region)
    response = ssm.get_parameter(Name=parameter_path(environment, name), WithDecryption=True)
    return response['Parameter']['Value']
