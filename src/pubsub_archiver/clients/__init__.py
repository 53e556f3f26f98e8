from .archiver import ArchiveClient
from .base import BaseClient, ConsumingClient, configure_logging
from .consumer import ConsumerClient
from .producer import ProducerClient

CLIENTS = {
    ConsumerClient.client_type: ConsumerClient,
    ArchiveClient.client_type: ArchiveClient,
    ProducerClient.client_type: ProducerClient,
}
