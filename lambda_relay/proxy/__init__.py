"""
Cloud side of the relay.

The proxy runs inside the cloud function and forwards each invocation to
the local runner through the request queue.
"""

from lambda_relay.proxy.proxy import CloudProxy, ProxyResult, ProxyState, ProxyStatus

__all__ = [
    "CloudProxy",
    "ProxyResult",
    "ProxyState",
    "ProxyStatus",
]
