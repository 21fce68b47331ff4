import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SERVICE_URL_TEMPLATE = (
    "https://queue-service-dot-{project_id}.ew.r.appspot.com"
)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Library configuration loaded from environment variables."""

    # --- Required Variables ---
    service_name: str

    # --- Optional Variables with Defaults ---
    log_level: str
    aws_region: str | None

    # --- Dispatch Configuration ---
    queue_service_url_template: str
    dispatch_ceiling_mb: int
    legacy_chunking: bool
    legacy_bytes_per_megabyte: int
    ops_per_instance: int
    entities_per_request: int
    request_timeout_seconds: float

    # --- Derived Properties ---
    @property
    def dispatch_ceiling_bytes(self) -> int:
        return self.dispatch_ceiling_mb * 1_000_000

    def queue_service_base_url(self, project_id: str) -> str:
        return self.queue_service_url_template.format(project_id=project_id).rstrip(
            "/"
        )

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            service_name = os.environ["SERVICE_NAME"]

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            aws_region = os.getenv("AWS_REGION") or None

            # --- Handle dispatch configuration ---
            queue_service_url_template = os.getenv(
                "QUEUE_SERVICE_URL_TEMPLATE", DEFAULT_QUEUE_SERVICE_URL_TEMPLATE
            )
            if "{project_id}" not in queue_service_url_template:
                raise ValueError(
                    "QUEUE_SERVICE_URL_TEMPLATE must contain a '{project_id}' placeholder."
                )

            dispatch_ceiling_mb = int(os.getenv("DISPATCH_CEILING_MB", "31"))
            if dispatch_ceiling_mb <= 0:
                raise ValueError("DISPATCH_CEILING_MB must be a positive integer.")

            legacy_chunking = os.getenv("LEGACY_CHUNKING", "true").lower() in (
                "true",
                "1",
                "yes",
                "on",
            )

            legacy_bytes_per_megabyte = int(
                os.getenv("LEGACY_BYTES_PER_MEGABYTE", "8000000")
            )
            if legacy_bytes_per_megabyte <= 0:
                raise ValueError(
                    "LEGACY_BYTES_PER_MEGABYTE must be a positive integer."
                )

            ops_per_instance = int(os.getenv("OPS_PER_INSTANCE", "1"))
            if ops_per_instance <= 0:
                raise ValueError("OPS_PER_INSTANCE must be a positive integer.")

            entities_per_request = int(os.getenv("ENTITIES_PER_REQUEST", "500"))
            if entities_per_request <= 0:
                raise ValueError("ENTITIES_PER_REQUEST must be a positive integer.")

            request_timeout_seconds = float(
                os.getenv("REQUEST_TIMEOUT_SECONDS", "60")
            )
            if request_timeout_seconds <= 0:
                raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive.")

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            service_name=service_name,
            log_level=log_level,
            aws_region=aws_region,
            queue_service_url_template=queue_service_url_template,
            dispatch_ceiling_mb=dispatch_ceiling_mb,
            legacy_chunking=legacy_chunking,
            legacy_bytes_per_megabyte=legacy_bytes_per_megabyte,
            ops_per_instance=ops_per_instance,
            entities_per_request=entities_per_request,
            request_timeout_seconds=request_timeout_seconds,
        )


def get_project_id() -> str:
    """
    Returns the project identifier used to address the queue service.

    Reads PROJECT_ID, then GOOGLE_CLOUD_PROJECT. Raises ConfigurationError
    when neither is set.
    """
    project_id = os.getenv("PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project_id:
        raise ConfigurationError(
            "env var PROJECT_ID or GOOGLE_CLOUD_PROJECT must be set",
            error_code="PROJECT_ID_NOT_FOUND",
        )
    return project_id


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the library configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading cloud helpers configuration from environment...")
    return AppConfig.load_from_env()
