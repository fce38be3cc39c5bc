"""formrelay: multi-tenant form-to-email intake backend."""

__version__ = "0.1.0"
