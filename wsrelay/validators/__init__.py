"""Validators for inbound connection parameters."""

from wsrelay.validators.region_validator import bare_host, is_valid_region

__all__ = ["bare_host", "is_valid_region"]
