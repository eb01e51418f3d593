"""FeaturePlus data layer configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item] or list(default)


# Project root (one level up from featureplus/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Local authoritative store used by the SQLite gateway
DB_PATH = Path(os.getenv("FEATUREPLUS_DB_PATH", str(PROJECT_ROOT / "data" / "featureplus.db")))

# Tags
TAG_AUTOCOMPLETE_MIN_CHARS = max(1, _env_int("FEATUREPLUS_TAG_AUTOCOMPLETE_MIN_CHARS", 2))

# Sync coordinator
TEMP_ID_PREFIX = os.getenv("FEATUREPLUS_TEMP_ID_PREFIX", "tmp-") or "tmp-"
MUTATION_HISTORY = max(1, _env_int("FEATUREPLUS_MUTATION_HISTORY", 40))

# Project defaults applied when the remote returns an empty config
DEFAULT_TASK_TYPES = _env_list("FEATUREPLUS_DEFAULT_TASK_TYPES", ["UI", "Backend", "DB"])
DEFAULT_FEATURE_CATEGORIES = _env_list(
    "FEATUREPLUS_DEFAULT_FEATURE_CATEGORIES",
    ["Auth", "Payment", "Tags", "Tasks", "Features"],
)

# Observability
OTEL_ENABLED = _env_bool("FEATUREPLUS_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("FEATUREPLUS_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("FEATUREPLUS_OTEL_SERVICE_NAME", "featureplus-client")
PROM_PORT = _env_int("FEATUREPLUS_PROM_PORT", 0)
