"""Protocol buffer messages for the CSI Identity probe call.

Only the two messages of ``csi.v1.Identity/Probe`` are needed, so they are
described here directly instead of shipping the full generated CSI stubs:

    message ProbeRequest {}
    message ProbeResponse { google.protobuf.BoolValue ready = 1; }
"""

from typing import Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, wrappers_pb2

SERVICE_NAME = "csi.v1.Identity"
PROBE_METHOD = f"/{SERVICE_NAME}/Probe"


def _probe_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="csiliveness/csi_identity_probe.proto",
        package="csi.v1",
        syntax="proto3",
        dependency=[wrappers_pb2.DESCRIPTOR.name],
    )
    file_proto.message_type.add(name="ProbeRequest")
    response = file_proto.message_type.add(name="ProbeResponse")
    response.field.add(
        name="ready",
        json_name="ready",
        number=1,
        label=descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL,
        type=descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE,
        type_name=".google.protobuf.BoolValue",
    )
    return file_proto


# Separate from the default pool, which the generated CSI stubs populate with
# the same message names.
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(wrappers_pb2.DESCRIPTOR.serialized_pb)
_pool.AddSerializedFile(_probe_file_descriptor().SerializeToString())

ProbeRequest = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName("csi.v1.ProbeRequest")
)
ProbeResponse = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName("csi.v1.ProbeResponse")
)


def probe_response(ready: Optional[bool]) -> "ProbeResponse":
    """Build a ProbeResponse.

    Args:
        ready: Readiness to report, or None to leave the field unset.
    """
    response = ProbeResponse()
    if ready is not None:
        response.ready.value = ready
    return response
