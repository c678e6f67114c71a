"""Constants and configuration for cdnspeed."""

# Latency probing
DEFAULT_ROUTINES = 200
MAX_ROUTINES = 1000
DEFAULT_PING_TIMES = 4
DEFAULT_PORT = 443
TCP_CONNECT_TIMEOUT = 1.0
HTTP_PING_TIMEOUT = 2.0

# Default probe/download URL (self-hosting one is recommended)
DEFAULT_URL = "https://cf.xiu2.xyz/url"

# Status codes accepted by HTTP mode when none are configured
DEFAULT_HTTPING_CODES = (200, 301, 302)

# Filtering
DEFAULT_MAX_DELAY_MS = 9999.0
DEFAULT_MIN_DELAY_MS = 0.0
DEFAULT_MAX_LOSS_RATE = 1.0
TIE_TOLERANCE_MS = 5.0

# Download testing
DEFAULT_TEST_COUNT = 10
DEFAULT_DOWNLOAD_SECONDS = 10.0
DEFAULT_MIN_SPEED = 0.0  # MB/s
DOWNLOAD_CHUNK_SIZE = 1024
DOWNLOAD_MAX_REDIRECTS = 10
SPEED_SLICES = 100
SPEED_RESCALE = 100.0
EWMA_AGE = 30
BANDWIDTH_INTERVAL = 1.0
BYTES_PER_MB = 1024 * 1024

# Address sampling
DEFAULT_IP_FILE = "ip.txt"
DEFAULT_MAX_CANDIDATES = 262144
IPV4_BLOCK_SIZE = 256
QUOTA_MAX_EXPONENT = {4: 16, 6: 18}

# Quota presets exposed by the CLI (exponent of 2)
V4_PRESETS = {"many4": "12"}
V6_PRESETS = {"some6": "8", "many6": "12", "lots6": "16", "more6": "18"}

# Output
DEFAULT_OUTPUT = "result.csv"
DEFAULT_PRINT_NUM = 10

# Datacenter (IATA) code pattern found in CDN headers
COLO_PATTERN = r"[A-Z]{3}"

# Browser-like user agent; some edges reject unknown clients
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/98.0.4758.80 Safari/537.36"
)

LOG_LEVEL_ENV = "CDNSPEED_LOG_LEVEL"
