"""gRPC access to the CSI plugin's Identity service."""

from csiliveness.rpc.client import IdentityClient
from csiliveness.rpc.connection import connect, normalize_endpoint
from csiliveness.rpc.messages import ProbeRequest, ProbeResponse, probe_response

__all__ = [
    "IdentityClient",
    "ProbeRequest",
    "ProbeResponse",
    "connect",
    "normalize_endpoint",
    "probe_response",
]
