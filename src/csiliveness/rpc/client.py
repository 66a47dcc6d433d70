"""Client for the CSI Identity service."""

import grpc

from csiliveness.rpc.messages import PROBE_METHOD, ProbeRequest, ProbeResponse


class IdentityClient:
    """Calls ``csi.v1.Identity/Probe`` over an established channel.

    Example:
        >>> channel = connect("unix:///csi/csi.sock")
        >>> client = IdentityClient(channel)
        >>> client.probe(timeout=3.0)
        True
    """

    def __init__(self, channel: grpc.Channel) -> None:
        self._probe = channel.unary_unary(
            PROBE_METHOD,
            request_serializer=ProbeRequest.SerializeToString,
            response_deserializer=ProbeResponse.FromString,
        )

    def probe(self, timeout: float) -> bool:
        """Ask the plugin whether it is ready.

        An unset ``ready`` field counts as ready. Plugins set it to false
        only while they are still initializing.

        Args:
            timeout: Deadline for the call in seconds.

        Returns:
            True if the plugin is ready, False if it reported not ready.

        Raises:
            grpc.RpcError: If the call fails or the deadline expires.
        """
        response = self._probe(ProbeRequest(), timeout=timeout)
        if not response.HasField("ready"):
            return True
        return response.ready.value
