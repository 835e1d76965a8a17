"""CloudVault: cloud file storage backend."""

__version__ = "1.0.0"
