"""
AWS Client Manager utility.

Manages AWS service clients with proper error handling and credential management.
"""

import logging
from typing import Dict, Any, Optional
import boto3
from botocore.exceptions import ClientError, NoCredentialsError
from botocore.config import Config

logger = logging.getLogger(__name__)


class AWSClientManager:
    """
    AWS client manager for centralized AWS service access.

    Provides centralized management of AWS service clients with proper
    error handling, retries, and credential management.
    """

    def __init__(self, config, region: Optional[str] = None, validate: bool = True):
        """
        Initialize AWS client manager.

        Args:
            config: Application settings containing AWS credentials
            region: Region override (stack.yml aws.region)
            validate: Check credentials with STS on initialization
        """
        self.config = config
        self.region = region or config.aws_region
        self._clients = {}

        # Set up session with credentials
        self.session = self._create_session()

        if validate:
            self._validate_credentials()

    def _boto_config(self, region: str) -> Config:
        return Config(
            region_name=region,
            retries={
                'max_attempts': 3,
                'mode': 'adaptive'
            },
            read_timeout=60,
            connect_timeout=10
        )

    def _create_session(self) -> boto3.Session:
        """Create boto3 session with proper credentials."""
        try:
            credentials = self.config.get_aws_credentials()

            if credentials:
                session = boto3.Session(**credentials)
                if self.config.aws_profile:
                    logger.info(f"Created boto3 session with AWS profile: {self.config.aws_profile}")
                else:
                    logger.info("Created boto3 session with explicit credentials")
            else:
                # Use default credential chain (aws-vault, IAM roles, etc.)
                session = boto3.Session()
                logger.info("Created boto3 session with default credential chain")

            return session

        except Exception as e:
            logger.error(f"Error creating boto3 session: {e}")
            raise

    def _validate_credentials(self):
        """Validate AWS credentials by making a simple API call."""
        try:
            identity = self.get_caller_identity(raise_errors=True)
            logger.info(f"AWS credentials validated for account {identity.get('Account', 'Unknown')}")

        except NoCredentialsError:
            logger.error("No AWS credentials found. Please configure your credentials.")
            raise
        except ClientError as e:
            logger.error(f"AWS credentials validation failed: {e}")
            raise

    def get_client(self, service_name: str, region: Optional[str] = None) -> Any:
        """
        Get AWS service client with caching.

        Args:
            service_name: AWS service name (e.g., 'ec2', 'sts')
            region: Optional region override

        Returns:
            Boto3 client for the specified service
        """
        client_region = region or self.region
        client_key = f"{service_name}_{client_region}"

        if client_key in self._clients:
            return self._clients[client_key]

        client = self.session.client(service_name, config=self._boto_config(client_region))
        self._clients[client_key] = client

        logger.debug(f"Created {service_name} client for region {client_region}")
        return client

    def get_caller_identity(self, raise_errors: bool = False) -> Dict[str, Any]:
        """
        Get caller identity information.

        Returns:
            Dictionary containing caller identity information, or an empty
            dict on failure unless ``raise_errors`` is set
        """
        try:
            return self.get_client("sts").get_caller_identity()
        except (ClientError, NoCredentialsError) as e:
            if raise_errors:
                raise
            logger.error(f"Error getting caller identity: {e}")
            return {}

