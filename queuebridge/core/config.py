"""Runtime configuration helpers for the queue bridge."""

import secrets
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def resolve_secret_key(cfg, *env_names):
    """Resolve secret key from env/config with secure fallback."""
    for name in env_names:
        value = (cfg.environ.get(name) or "").strip()
        if value:
            return value
    configured = (cfg.get_str("QBRIDGE_SECRET_KEY", "") or "").strip()
    if configured:
        return configured
    return secrets.token_hex(32)


def resolve_display_tz(cfg, default="UTC"):
    """Return the log display timezone, falling back to ``default`` when unknown."""
    try:
        return ZoneInfo(cfg.get_str("DISPLAY_TZ", default))
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(default)


def apply_default_flask_config(app):
    """Apply baseline Flask runtime config values."""
    app.json.sort_keys = False
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024
