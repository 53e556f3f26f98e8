from .schemas import (
    ArchiveClientConfig,
    BrokerConfig,
    ClientConfig,
    ConsumerClientConfig,
    HeartbeatRecord,
    ProducerClientConfig,
    load_config,
)
