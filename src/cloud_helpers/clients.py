# src/cloud_helpers/clients.py

"""
Client wrappers for the managed services an application talks to.

The wrappers give the rest of the application a small typed surface over raw
boto3 clients and translate provider errors into this library's exceptions.
``ClientBundle`` owns every handle so they are created once at start-up and
closed once at shutdown, instead of living in module-level globals.
"""

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, BinaryIO, cast

import boto3
import httpx
from aws_lambda_powertools import Logger
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .config import AppConfig, get_project_id
from .dispatch import BatchDispatcher
from .exceptions import (
    ConfigurationError,
    StorageAccessDeniedError,
    StorageObjectNotFoundError,
    StorageOperationError,
    StorageThrottlingError,
    StorageTimeoutError,
    TaskQueueError,
)
from .reporting import ErrorReporter, LogSink, build_logger
from .schemas import HttpTaskRequest
from .transport import HttpQueueServiceTransport

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.client import DynamoDBClient as DynamoDBClientType
    from mypy_boto3_s3.client import S3Client as S3ClientType
    from mypy_boto3_sqs.client import SQSClient as SQSClientType

logger = logging.getLogger(__name__)

_THROTTLING_CODES = (
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "SlowDown",
)
_TIMEOUT_CODES = ("RequestTimeout", "RequestTimeoutException")


def _close_all(closeables: list[Any]) -> None:
    """Closes every handle, then re-raises a failure from any of them."""
    with ExitStack() as stack:
        for closeable in reversed(closeables):
            close = getattr(closeable, "close", None)
            if close is not None:
                stack.callback(close)


def _storage_error(
    e: Exception, operation: str, bucket: str, key: str
) -> Exception:
    """Maps a boto3 failure to the matching storage exception."""
    if isinstance(e, ClientError):
        error_code = e.response["Error"]["Code"]
        error_message = e.response["Error"]["Message"]
        aws_context = {
            "aws_error_code": error_code,
            "aws_error_message": error_message,
        }

        if error_code in ("NoSuchKey", "404", "NotFound"):
            return StorageObjectNotFoundError(bucket, key, context=aws_context)
        elif error_code in ("AccessDenied", "403"):
            return StorageAccessDeniedError(bucket, key, context=aws_context)
        elif error_code in _THROTTLING_CODES:
            return StorageThrottlingError(
                operation, context={"bucket": bucket, "key": key, **aws_context}
            )
        elif error_code in _TIMEOUT_CODES:
            return StorageTimeoutError(
                operation, context={"bucket": bucket, "key": key, **aws_context}
            )
        else:
            # For other client errors, wrap in a generic storage error
            return StorageOperationError(
                operation,
                error_message,
                context={"bucket": bucket, "key": key, **aws_context},
            )
    return StorageTimeoutError(
        operation,
        context={"bucket": bucket, "key": key, "connection_error": str(e)},
    )


class S3StorageClient:
    """
    A wrapper for object storage operations on S3.
    """

    def __init__(self, s3_client: "S3ClientType", kms_key_id: str | None = None):
        """
        Initializes the S3StorageClient.

        Args:
            s3_client: A typed boto3 S3 client.
            kms_key_id: Optional KMS key ID for server-side encryption on writes.
        """
        self._client = s3_client
        self._kms_key_id = kms_key_id
        if self._kms_key_id:
            logger.debug(
                "S3StorageClient initialized with SSE-KMS enabled.",
                extra={"kms_key_id": self._kms_key_id},
            )

    def get_file_content_stream(self, bucket: str, key: str) -> BinaryIO:
        """
        Retrieves an object's body as a file-like streaming object.
        Raises specific storage exceptions based on the error type.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return cast(BinaryIO, response["Body"])
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            raise _storage_error(e, "GetObject", bucket, key) from e

    def download_object(self, bucket: str, key: str) -> bytes:
        """Downloads a whole object into memory."""
        stream = self.get_file_content_stream(bucket, key)
        try:
            data = stream.read()
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise _storage_error(e, "GetObject", bucket, key) from e
        finally:
            stream.close()

        logger.debug(
            "Downloaded object",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)},
        )
        return data

    def write_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Writes *data* to bucket/key, replacing any existing object."""
        put_args: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if self._kms_key_id:
            put_args.update(
                {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": self._kms_key_id}
            )
        logger.info(
            "Writing object",
            extra={
                "bucket": bucket,
                "key": key,
                "size_bytes": len(data),
                "kms_enabled": bool(self._kms_key_id),
            },
        )

        try:
            self._client.put_object(**put_args)
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            raise _storage_error(e, "PutObject", bucket, key) from e


class TaskQueueClient:
    """
    Enqueues HTTP request descriptions on SQS queues for asynchronous workers.
    """

    def __init__(self, sqs_client: "SQSClientType"):
        self._client = sqs_client
        self._queue_urls: dict[str, str] = {}

    def _queue_url(self, queue_name: str) -> str:
        if queue_name not in self._queue_urls:
            response = self._client.get_queue_url(QueueName=queue_name)
            self._queue_urls[queue_name] = response["QueueUrl"]
        return self._queue_urls[queue_name]

    def queue_http_request(self, queue_name: str, request: HttpTaskRequest) -> str:
        """
        Adds *request* to *queue_name* and returns the created message id.
        """
        try:
            queue_url = self._queue_url(queue_name)
            response = self._client.send_message(
                QueueUrl=queue_url,
                MessageBody=request.model_dump_json(),
            )
        except ClientError as e:
            raise TaskQueueError(
                queue_name,
                e.response["Error"]["Message"],
                context={"aws_error_code": e.response["Error"]["Code"]},
            ) from e
        except BotoCoreError as e:
            raise TaskQueueError(queue_name, str(e)) from e

        message_id = response["MessageId"]
        logger.info(
            "Queued HTTP task",
            extra={
                "queue_name": queue_name,
                "message_id": message_id,
                "target_url": request.url,
            },
        )
        return message_id


@dataclass
class ClientBundle:
    """
    Every service handle the application needs, with an explicit lifecycle.
    """

    config: AppConfig
    storage: S3StorageClient
    datastore: "DynamoDBClientType"
    task_queue: TaskQueueClient
    transport: HttpQueueServiceTransport
    dispatcher: BatchDispatcher
    error_reporter: ErrorReporter
    log_sink: LogSink
    _closeables: list[Any] = field(default_factory=list, repr=False)
    _closed: bool = field(default=False, repr=False)

    @classmethod
    def initialise(
        cls,
        config: AppConfig,
        session: boto3.session.Session | None = None,
        http_client: httpx.Client | None = None,
        powertools_logger: Logger | None = None,
    ) -> "ClientBundle":
        """
        Creates all clients. Raises ConfigurationError if any cannot be built.
        """
        session = session or boto3.session.Session(region_name=config.aws_region)
        powertools_logger = powertools_logger or build_logger(config)
        error_reporter = ErrorReporter(powertools_logger)

        built: list[Any] = []
        try:
            for service_name in ("s3", "dynamodb", "sqs"):
                built.append(session.client(service_name))
        except BotoCoreError as e:
            _close_all(built)
            error = ConfigurationError(
                f"Failed to create AWS clients: {e}",
                error_code="CLIENT_INITIALISATION_FAILED",
            )
            error_reporter.report(error)
            raise error from e
        s3_boto_client, dynamodb_client, sqs_boto_client = built

        transport = HttpQueueServiceTransport(
            config, client=http_client, project_id_provider=get_project_id
        )
        closeables: list[Any] = [
            transport,
            s3_boto_client,
            dynamodb_client,
            sqs_boto_client,
        ]

        logger.info(
            "Client bundle initialised",
            extra={"service_name": config.service_name, "region": config.aws_region},
        )
        return cls(
            config=config,
            storage=S3StorageClient(s3_client=s3_boto_client),
            datastore=dynamodb_client,
            task_queue=TaskQueueClient(sqs_client=sqs_boto_client),
            transport=transport,
            dispatcher=BatchDispatcher.from_config(transport, config),
            error_reporter=error_reporter,
            log_sink=LogSink(powertools_logger),
            _closeables=closeables,
        )

    def close(self) -> None:
        """Closes every handle. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        _close_all(self._closeables)
        logger.info("Client bundle closed")

    def __enter__(self) -> "ClientBundle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
