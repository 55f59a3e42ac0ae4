"""whitelister: append partner IP whitelist entries to web dispatcher and router ACL tables."""

__all__ = ["__version__"]
__version__ = "0.1.0"
