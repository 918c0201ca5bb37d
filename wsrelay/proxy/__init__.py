"""Proxy pool package: rotation, fetch spacing, and session counting."""

from wsrelay.proxy.pool import ProxyPool
from wsrelay.proxy.types import ProxyEndpoint, ProxyLease

__all__ = ["ProxyEndpoint", "ProxyLease", "ProxyPool"]
