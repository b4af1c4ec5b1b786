"""Project-wide constants shared by the coordinator and the uploader."""

SNIFF_LENGTH: int = 512  # bytes handed to the MIME sniffer
HASH_CHUNK_SIZE: int = 64 * 1024
TRANSFER_CHUNK_SIZE: int = 64 * 1024

MEDIA_KINDS = frozenset({"image", "audio", "video"})

CAPABILITY_TTL_SECONDS: int = 60
DEFAULT_UPLOAD_METHOD: str = "PUT"

UPLOAD_REQUEST_PATH: str = "/upload_request"

METADATA_HEADER_PREFIX: str = "x-amz-meta-"
