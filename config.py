"""Configuration management for the context graph engine."""

import os

# Define path constants directly to avoid circular imports with utils
# (utils.logger reads Config, and utils.runtime is in the utils package)
_RUNTIME_DIR = os.path.join(os.path.expanduser("~"), ".ctxgraph")
_CONFIG_FILE = os.environ.get("CTXGRAPH_CONFIG", os.path.join(_RUNTIME_DIR, "config"))

# Template written by `write_default_config()`; never written implicitly.
_DEFAULT_CONFIG = """\
# ctxgraph Configuration

# Graph traversal
MAX_TRAVERSAL_DEPTH=10
DEFAULT_EDGE_WEIGHT=1.0
IMPACT_DECAY_FACTOR=0.8

# Compression
COMPRESSION_LEVEL=medium
COMPRESSION_AGE_THRESHOLD=1800
COMPRESSION_PRESERVE_KEYS=id,status,error,output
COMPRESSION_MAX_SUMMARY_LENGTH=1000
COMPRESSION_USE_GRAPH_ANALYSIS=true
COMPRESSION_FORCE_GRAPH_ANALYSIS=false
COMPRESSION_BATCH_CHUNK_SIZE=3

# Persistent backend
ENVIRONMENT=development
BACKEND_TIMEOUT=10
"""


def _load_config(path: str) -> dict[str, str]:
    """Parse a KEY=VALUE config file, skipping comments and blank lines."""
    cfg: dict[str, str] = {}
    if not os.path.isfile(path):
        return cfg
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            # Strip inline comments (# ...) from the value
            if "#" in value:
                value = value[: value.index("#")]
            cfg[key.strip()] = value.strip()
    return cfg


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def write_default_config(path: str = _CONFIG_FILE) -> str:
    """Write the default config template if no file exists yet.

    Returns:
        Path of the config file
    """
    if not os.path.exists(path):
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(_DEFAULT_CONFIG)
    return path


PRODUCTION_ENVIRONMENTS = ("production", "prod")

_cfg = _load_config(_CONFIG_FILE)


class Config:
    """Default values for the context graph engine.

    Values are read once from ~/.ctxgraph/config (or $CTXGRAPH_CONFIG).
    Components never read Config during an operation; they snapshot it into
    GraphConfig / CompressionConfig when constructed.
    """

    # Graph traversal
    MAX_TRAVERSAL_DEPTH = int(_cfg.get("MAX_TRAVERSAL_DEPTH", "10"))
    DEFAULT_EDGE_WEIGHT = float(_cfg.get("DEFAULT_EDGE_WEIGHT", "1.0"))
    IMPACT_DECAY_FACTOR = float(_cfg.get("IMPACT_DECAY_FACTOR", "0.8"))

    # Compression
    COMPRESSION_LEVEL = _cfg.get("COMPRESSION_LEVEL", "medium").lower()
    COMPRESSION_AGE_THRESHOLD = float(_cfg.get("COMPRESSION_AGE_THRESHOLD", "1800"))  # seconds
    COMPRESSION_PRESERVE_KEYS = _split_list(
        _cfg.get("COMPRESSION_PRESERVE_KEYS", "id,status,error,output")
    )
    COMPRESSION_MAX_SUMMARY_LENGTH = int(_cfg.get("COMPRESSION_MAX_SUMMARY_LENGTH", "1000"))
    COMPRESSION_USE_GRAPH_ANALYSIS = (
        _cfg.get("COMPRESSION_USE_GRAPH_ANALYSIS", "true").lower() == "true"
    )
    # Compress through the graph-aware path even when already under budget
    COMPRESSION_FORCE_GRAPH_ANALYSIS = (
        _cfg.get("COMPRESSION_FORCE_GRAPH_ANALYSIS", "false").lower() == "true"
    )
    COMPRESSION_BATCH_CHUNK_SIZE = int(_cfg.get("COMPRESSION_BATCH_CHUNK_SIZE", "3"))

    # Persistent backend
    ENVIRONMENT = _cfg.get("ENVIRONMENT", os.environ.get("CTXGRAPH_ENV", "development")).lower()
    BACKEND_TIMEOUT = float(_cfg.get("BACKEND_TIMEOUT", "10"))

    # Retry Configuration
    RETRY_MAX_ATTEMPTS = int(_cfg.get("RETRY_MAX_ATTEMPTS", "3"))
    RETRY_INITIAL_DELAY = float(_cfg.get("RETRY_INITIAL_DELAY", "0.5"))
    RETRY_MAX_DELAY = float(_cfg.get("RETRY_MAX_DELAY", "10.0"))
    RETRY_EXPONENTIAL_BASE = 2.0
    RETRY_JITTER = True

    # Logging Configuration
    LOG_LEVEL = _cfg.get("LOG_LEVEL", "INFO").upper()

    @classmethod
    def is_production(cls) -> bool:
        """Whether destructive backend operations must be refused."""
        return cls.ENVIRONMENT in PRODUCTION_ENVIRONMENTS

    @classmethod
    def validate(cls):
        """Validate configuration values.

        Raises:
            ValueError: If a value is out of range
        """
        if cls.COMPRESSION_LEVEL not in ("low", "medium", "high"):
            raise ValueError(
                f"COMPRESSION_LEVEL must be low, medium or high, got {cls.COMPRESSION_LEVEL!r}"
            )
        if not 0 < cls.DEFAULT_EDGE_WEIGHT <= 1:
            raise ValueError("DEFAULT_EDGE_WEIGHT must be in (0, 1]")
        if not 0 < cls.IMPACT_DECAY_FACTOR <= 1:
            raise ValueError("IMPACT_DECAY_FACTOR must be in (0, 1]")
        if cls.MAX_TRAVERSAL_DEPTH < 1:
            raise ValueError("MAX_TRAVERSAL_DEPTH must be at least 1")
        if cls.COMPRESSION_BATCH_CHUNK_SIZE < 1:
            raise ValueError("COMPRESSION_BATCH_CHUNK_SIZE must be at least 1")
