"""Host-provider config file (named remote connection profiles)."""

import json
from pathlib import Path


def load_provider_config(config_path):
    """Return the parsed provider config dict, or ``None`` when unusable."""
    if not config_path:
        return None
    path = Path(config_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None
    if not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        # Malformed provider file: fall back to env/config keys.
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def select_provider(config, provider_name=""):
    """Return the active provider entry (explicit name wins over ``active``)."""
    if not isinstance(config, dict):
        return None
    providers = config.get("providers")
    if not isinstance(providers, dict):
        return None
    name = (provider_name or "").strip() or str(config.get("active") or "").strip()
    if not name:
        return None
    entry = providers.get(name)
    return entry if isinstance(entry, dict) else None
