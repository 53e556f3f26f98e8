import json
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from ..utilities import (
    ARCHIVE_POLL_TIMEOUT_S,
    CONSUMER_POLL_TIMEOUT_MS,
    DEFAULT_MESSAGES_PER_FILE,
    HEARTBEAT_TYPE,
    ConfigError,
    format_time,
)


class HeartbeatRecord(BaseModel):
    '''Liveness record published on a data topic.'''

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["Heartbeat"] = Field(HEARTBEAT_TYPE, alias="Type")
    time: Optional[datetime] = Field(None, alias="Time")
    topic: Optional[str] = Field(None, alias="Topic")
    client_id: Optional[str] = Field(None, alias="ClientId")

    @field_serializer("time")
    def _serialize_time(self, value: Optional[datetime]) -> Optional[str]:
        return None if value is None else format_time(value)

    def get_errors(self) -> List[str]:
        errors = []
        if self.time is None:
            errors.append("No Time in Heartbeat.")
        if self.topic is None:
            errors.append("No Topic in Heartbeat.")
        elif not self.topic:
            errors.append("Empty Topic in Heartbeat.")
        if self.client_id is None:
            errors.append("No Client Id in Heartbeat.")
        elif not self.client_id:
            errors.append("Empty Client Id in Heartbeat.")
        return errors

    def is_valid(self) -> bool:
        return not self.get_errors()


# ------------ Client configuration ------------
class BrokerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["ConsumerConfig", "ProducerConfig"] = Field(alias="Type")
    properties: Dict[str, Any] = Field(alias="Properties")

    @field_validator("properties")
    @classmethod
    def _require_url(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value.get("url"):
            raise ValueError("Properties.url is required")
        return value

    @property
    def url(self) -> str:
        return str(self.properties["url"])

    @property
    def client_id(self) -> Optional[str]:
        client_id = self.properties.get("client.id")
        return None if client_id is None else str(client_id)


class ClientConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    broker_type: ClassVar[str] = ""

    type: str = Field(alias="Type")
    log_config_file: Optional[str] = Field(None, alias="LogConfigFile")
    broker_config: BrokerConfig = Field(alias="BrokerConfig")
    status_port: Optional[int] = Field(None, alias="StatusPort", ge=0, le=65535)

    @model_validator(mode="after")
    def _check_broker_type(self):
        if self.broker_config.type != self.broker_type:
            raise ValueError(
                f"BrokerConfig.Type must be {self.broker_type}, got {self.broker_config.type}"
            )
        return self


class ConsumerClientConfig(ClientConfig):
    broker_type: ClassVar[str] = "ConsumerConfig"

    type: Literal["ConsumerClient"] = Field(alias="Type")
    topic_list: List[str] = Field(alias="TopicList", min_length=1)
    file_extension: str = Field(alias="FileExtension", min_length=1)
    file_name: str = Field("", alias="FileName")
    output_directory: str = Field(alias="OutputDirectory", min_length=1)
    messages_per_file: int = Field(DEFAULT_MESSAGES_PER_FILE, alias="MessagesPerFile", ge=1)
    time_per_file: Optional[int] = Field(None, alias="TimePerFile")
    heartbeat_interval: Optional[int] = Field(None, alias="HeartbeatInterval")
    heartbeat_directory: Optional[str] = Field(None, alias="HeartbeatDirectory")
    poll_timeout: int = Field(CONSUMER_POLL_TIMEOUT_MS, alias="PollTimeout")  # milliseconds


class ArchiveClientConfig(ClientConfig):
    broker_type: ClassVar[str] = "ConsumerConfig"

    type: Literal["ArchiveClient"] = Field(alias="Type")
    topic_list: List[str] = Field(alias="TopicList", min_length=1)
    file_extension: str = Field(alias="FileExtension", min_length=1)
    file_name: str = Field("", alias="FileName")
    output_directory: str = Field(alias="OutputDirectory", min_length=1)
    heartbeat_interval: Optional[int] = Field(None, alias="HeartbeatInterval")
    heartbeat_directory: Optional[str] = Field(None, alias="HeartbeatDirectory")
    poll_timeout: int = Field(ARCHIVE_POLL_TIMEOUT_S, alias="PollTimeout")  # seconds


class ProducerClientConfig(ClientConfig):
    broker_type: ClassVar[str] = "ProducerConfig"

    type: Literal["ProducerClient"] = Field(alias="Type")
    topic: str = Field(alias="Topic", min_length=1)
    file_extension: str = Field(alias="FileExtension", min_length=1)
    input_directory: str = Field(alias="InputDirectory", min_length=1)
    archive_directory: Optional[str] = Field(None, alias="ArchiveDirectory")
    time_per_file: Optional[int] = Field(None, alias="TimePerFile")
    heartbeat_interval: Optional[int] = Field(None, alias="HeartbeatInterval")


ConfigT = TypeVar("ConfigT", bound=ClientConfig)


def load_config(path: str, model: Type[ConfigT]) -> ConfigT:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read configuration {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid json in configuration {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"configuration {path} is not a json object")
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration {path}: {exc}") from exc
