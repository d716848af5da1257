"""
Protocol buffer definition of the deploy data that gets signed.

The node verifies signatures over the protobuf encoding of ``DeployDataProto``
(CasperMessage.proto), so the message is declared here with the same field
numbers and proto3 semantics: zero values and empty strings are not emitted.
"""
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from ..models import Deploy

_FIELD = descriptor_pb2.FieldDescriptorProto

# (name, field number, type) as in CasperMessage.proto
_DEPLOY_DATA_FIELDS = (
    ("term", 2, _FIELD.TYPE_STRING),
    ("timestamp", 3, _FIELD.TYPE_INT64),
    ("phlo_price", 7, _FIELD.TYPE_INT64),
    ("phlo_limit", 8, _FIELD.TYPE_INT64),
    ("valid_after_block_number", 10, _FIELD.TYPE_INT64),
    ("shard_id", 11, _FIELD.TYPE_STRING),
)


def _build_deploy_data_class():
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "asichain_sdk/deploy_data.proto"
    file_proto.package = "casper"
    file_proto.syntax = "proto3"

    message = file_proto.message_type.add()
    message.name = "DeployDataProto"
    for name, number, field_type in _DEPLOY_DATA_FIELDS:
        field = message.field.add()
        field.name = name
        field.number = number
        field.type = field_type
        field.label = _FIELD.LABEL_OPTIONAL

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return message_factory.GetMessageClass(pool.FindMessageTypeByName("casper.DeployDataProto"))


DeployDataProto = _build_deploy_data_class()


def serialize_deploy(deploy: Deploy) -> bytes:
    """Canonical protobuf bytes of a deploy, as hashed for signing"""
    message = DeployDataProto(
        term=deploy.term,
        timestamp=deploy.timestamp,
        phlo_price=deploy.phlo_price,
        phlo_limit=deploy.phlo_limit,
        valid_after_block_number=deploy.valid_after_block_number,
        shard_id=deploy.shard_id,
    )
    return message.SerializeToString(deterministic=True)


__all__ = ["DeployDataProto", "serialize_deploy"]
