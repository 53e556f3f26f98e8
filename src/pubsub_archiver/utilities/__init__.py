from .constants import *
from .errors import (
    ArchiverError,
    ChannelError,
    CodecError,
    ConfigError,
    HeartbeatValidationError,
    SinkError,
)
from .utility_functions import (
    as_text,
    ensure_newline,
    format_time,
    make_publish,
    make_subscribe,
    make_unsubscribe,
    parse_time,
    utc_date_string,
    utc_from_epoch,
)
