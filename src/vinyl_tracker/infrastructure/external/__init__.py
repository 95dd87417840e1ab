"""External service adapters."""

from .acrcloud_adapter import ACRCloudAdapter

__all__ = ["ACRCloudAdapter"]
