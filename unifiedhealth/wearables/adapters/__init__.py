"""Source normalizers for the unified health dataset.

Each adapter implements the SourceAdapter ABC and handles:
- Reading one provider's export from disk
- Converting readings to canonical units
- Attributing readings to provider-local calendar days

Available adapters:
    AppleHealthAdapter — Apple Health ``export.xml`` (streamed XML events)
    OuraAdapter        — Oura API v2 JSON exports (one file per endpoint)
    StravaAdapter      — Strava ``activities.json`` (summary activity list)
"""

from unifiedhealth.wearables.adapters.apple_health import AppleHealthAdapter
from unifiedhealth.wearables.adapters.oura import OuraAdapter
from unifiedhealth.wearables.adapters.strava import StravaAdapter

__all__ = [
    "AppleHealthAdapter",
    "OuraAdapter",
    "StravaAdapter",
    "ADAPTER_REGISTRY",
    "get_adapter",
]

# Registry: source_id → adapter class
ADAPTER_REGISTRY: dict[str, type] = {
    "apple_health": AppleHealthAdapter,
    "oura": OuraAdapter,
    "strava": StravaAdapter,
}


def get_adapter(source_id: str) -> "type":
    """Return the adapter class for a given source slug.

    Args:
        source_id: e.g. 'apple_health', 'oura', 'strava'

    Returns:
        The adapter class (not an instance).

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in ADAPTER_REGISTRY:
        raise KeyError(
            f"No adapter registered for source '{source_id}'. "
            f"Available: {list(ADAPTER_REGISTRY)}"
        )
    return ADAPTER_REGISTRY[source_id]
