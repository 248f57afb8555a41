from .client import AddinApiError, AddinClient, AddinConfig

__all__ = ["AddinApiError", "AddinClient", "AddinConfig"]
