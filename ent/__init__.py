"""ent: bucket-namespaced object storage gateway."""

__version__ = "0.1.0"
