BTC_ASSET_PUBKEY = "02" * 33
BTC_DECIMALS = 8

DEFAULT_SLIPPAGE_BPS = 500
MAX_BPS = 10_000
DEFAULT_HOST_NAMESPACE = "flashnet_pools"

NONCE_BYTES = 16

# The AMM zeroes the lowest bits of BTC outputs.
BTC_VARIABLE_FEE_BITS = 6

# Lightning routing fee fallback: max(min, ceil(amount * bps / 10000))
LIGHTNING_FEE_FLOOR_SATS = 5
LIGHTNING_FEE_FALLBACK_BPS = 17

MIN_TICK = -887272
MAX_TICK = 887272
TICK_BASE = "1.0001"

# Timeout constants (seconds)
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_QUOTE_TIMEOUT = 10.0
DEFAULT_TRANSFER_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_READ_RETRIES = 3

# Session tokens are refreshed this many seconds before they expire.
SESSION_EXPIRY_SKEW_S = 60.0
DEFAULT_SESSION_TTL_S = 15 * 60.0

# Gateway status caches (seconds)
PING_CACHE_TTL_S = 2
FEATURE_STATUS_CACHE_TTL_S = 5
MIN_AMOUNTS_CACHE_TTL_S = 5

ADAPTER_AMM = "AMM"
ADAPTER_LIGHTNING = "LIGHTNING"

DEFAULT_PAGINATION_LIMIT = 50
