# ------------ Heartbeat wire keys ------------
TYPE_KEY = "Type"
HEARTBEAT_TYPE = "Heartbeat"
TIME_KEY = "Time"
TOPIC_KEY = "Topic"
CLIENTID_KEY = "ClientId"
HEARTBEAT_FILE_EXTENSION = "heartbeat"
# ------------ Client defaults ------------
DEFAULT_MESSAGES_PER_FILE = 1
CONSUMER_POLL_TIMEOUT_MS = 500    # consumer polls in milliseconds
ARCHIVE_POLL_TIMEOUT_S = 10       # archiver polls in seconds
PUBLISH_ACK_TIMEOUT_S = 10.0      # wait for broker ack on publish
LOCAL_HISTORY_SIZE = 100          # last N messages kept per local topic
RETRY_DELAY_S = 1.0               # pause after a transport failure
IDLE_DELAY_S = 0.5                # producer pause when no input file is found
STATUS_HOST = "0.0.0.0"
# --------------------------------
