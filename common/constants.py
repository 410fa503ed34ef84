"""Project-wide constants (storage roots, chunk sizes, default ports)."""

DEFAULT_CHUNK_ROOT: str = "./uploads/chunks"
DEFAULT_UPLOAD_ROOT: str = "./uploads"

DEFAULT_CHUNK_SIZE_BYTES: int = 5 * 1024 * 1024  # client-side nominal chunk size
MAX_CHUNK_BYTES: int = 100 * 1024 * 1024  # per-chunk upload limit
STREAM_PIECE_BYTES: int = 64 * 1024  # bounded read/write unit while merging

CHUNK_NAME_MARKER: str = "-chunk-"
TEMP_CHUNK_SUFFIX: str = ".part"
TEMP_MERGE_SUFFIX: str = ".merging"

GATEWAY_HOST: str = "0.0.0.0"
GATEWAY_PORT: int = 3000
PUBLIC_BASE_URL: str = "http://localhost:3000"
STATIC_MOUNT_PATH: str = "/uploads"
