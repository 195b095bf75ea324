from .client import EntClient, EntError, IntegrityError

__all__ = ["EntClient", "EntError", "IntegrityError"]
