"""Storage backend facade and startup-time backend selection.

Queue logic only sees ``StorageBackend``; the concrete variant is chosen
once here from configuration and never branched on afterwards.
"""

from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.provider_config import load_provider_config, select_provider
from queuebridge.core.storage_core import StorageBackend, StorageStat
from queuebridge.core.storage_ftp import FtpStorage
from queuebridge.core.storage_local import LocalStorage
from queuebridge.core.storage_sftp import SftpStorage

STORAGE_BACKEND_CHOICES = ("local", "sftp", "ftp", "ftps")

__all__ = [
    "STORAGE_BACKEND_CHOICES",
    "StorageBackend",
    "StorageError",
    "StorageNotFound",
    "StorageStat",
    "LocalStorage",
    "SftpStorage",
    "FtpStorage",
    "create_storage",
    "resolve_storage_backend",
]


def _setting(cfg, key, section, field, default=None):
    """Config/env key first, then the provider section, then ``default``."""
    if cfg.has(key):
        return cfg.get_str(key, default)
    if isinstance(section, dict):
        value = section.get(field)
        if value is not None and str(value).strip():
            return value
    return default


def _truthy(value):
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def resolve_storage_backend(cfg, provider):
    """Return the configured backend name (env/config, provider, ``local``)."""
    name = cfg.get_str("STORAGE_BACKEND", "")
    if not name and isinstance(provider, dict):
        name = str(provider.get("backend") or "")
    name = (name or "local").strip().lower()
    if name not in STORAGE_BACKEND_CHOICES:
        raise ValueError(f"Invalid STORAGE_BACKEND: {name}. Choose from {list(STORAGE_BACKEND_CHOICES)}")
    return name


def create_storage(cfg, *, base_dir=None):
    """Build the storage backend described by ``cfg`` (a ``WebConfig``)."""
    provider_path = cfg.get_str("SST_API_PROVIDER_CONFIG", "")
    provider = select_provider(load_provider_config(provider_path), cfg.get_str("HOST_PROVIDER", ""))
    backend = resolve_storage_backend(cfg, provider)

    if backend in ("ftp", "ftps"):
        section = (provider or {}).get("ftp")
        secure_raw = _setting(cfg, "FTP_SECURE", section, "secure", "false")
        return FtpStorage(
            host=_setting(cfg, "FTP_HOST", section, "host"),
            user=_setting(cfg, "FTP_USER", section, "user") or _setting(cfg, "FTP_USER", section, "username"),
            password=_setting(cfg, "FTP_PASSWORD", section, "password"),
            port=int(_setting(cfg, "FTP_PORT", section, "port", 21)),
            root=_setting(cfg, "FTP_ROOT", section, "root", "/"),
            secure=backend == "ftps" or _truthy(secure_raw),
        )

    if backend == "sftp":
        section = (provider or {}).get("sftp")
        return SftpStorage(
            host=_setting(cfg, "SFTP_HOST", section, "host"),
            username=_setting(cfg, "SFTP_USER", section, "user") or _setting(cfg, "SFTP_USER", section, "username"),
            password=_setting(cfg, "SFTP_PASSWORD", section, "password"),
            port=int(_setting(cfg, "SFTP_PORT", section, "port", 22)),
            root=_setting(cfg, "SFTP_ROOT", section, "root", "/"),
            strict_host_keys=_truthy(_setting(cfg, "SFTP_STRICT_HOST_KEYS", section, "strictHostKeys", "false")),
        )

    return LocalStorage(base_dir)
