"""Settings for the order pipeline service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    broker_backend: str = Field("rabbitmq", validation_alias="BROKER_BACKEND")
    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")

    orders_channel: str = Field("orders", validation_alias="ORDERS_CHANNEL")
    retry_channel: str = Field("orders.retry", validation_alias="RETRY_CHANNEL")
    dead_letter_channel: str = Field("orders.dlq", validation_alias="DEAD_LETTER_CHANNEL")
    aggregated_channel: str = Field("orders.aggregated", validation_alias="AGGREGATED_CHANNEL")

    queue_max_length: int = Field(10_000, validation_alias="QUEUE_MAX_LENGTH")
    prefetch_count: int = Field(1, validation_alias="PREFETCH_COUNT")
    # Recent publishes kept per channel by the inmemory broker; 0 keeps none.
    inmemory_history_limit: int = Field(1000, ge=0, validation_alias="INMEMORY_HISTORY_LIMIT")

    # Total attempts made by the retry processor before an order is dead-lettered.
    max_retry_attempts: int = Field(3, ge=1, validation_alias="MAX_RETRY_ATTEMPTS")
    retry_backoff_seconds: float = Field(1.0, ge=0.0, validation_alias="RETRY_BACKOFF_SECONDS")

    primary_failure_probability: float = Field(
        0.1,
        ge=0.0,
        le=1.0,
        validation_alias="PRIMARY_FAILURE_PROBABILITY",
    )
    retry_failure_probability: float = Field(
        0.5,
        ge=0.0,
        le=1.0,
        validation_alias="RETRY_FAILURE_PROBABILITY",
    )

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(10, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    publish_timeout_seconds: float = Field(10.0, validation_alias="PUBLISH_TIMEOUT_SECONDS")

    dead_letter_backend: str = Field("memory", validation_alias="DEAD_LETTER_BACKEND")
    database_host: str = Field("localhost", validation_alias="DATABASE_HOST")
    database_port: int = Field(27017, validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("order_pipeline", validation_alias="DATABASE_NAME")
    dead_letter_collection: str = Field("failed_orders", validation_alias="DEAD_LETTER_COLLECTION")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")

    api_host: str = Field("0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(8080, validation_alias="API_PORT")
