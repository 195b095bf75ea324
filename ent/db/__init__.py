from .models import Base, BucketRecord
from .provider import SQLProvider

__all__ = [
    "Base",
    "BucketRecord",
    "SQLProvider",
]
