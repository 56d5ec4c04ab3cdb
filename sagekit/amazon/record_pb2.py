"""Protobuf messages of the RecordIO-protobuf format, built at import time.

The schema is package ``aialgs.data``: three dense tensor types, a ``Bytes``
payload, a ``Value`` holding one of them, and a ``Record`` mapping feature
and label names to values. Classes are generated from a private descriptor
pool so they never clash with another copy of the same schema.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_PACKAGE = "aialgs.data"

_F = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name, number, field_type, label=_F.LABEL_OPTIONAL, type_name=None, packed=False):
    field = message.field.add(name=name, number=number, type=field_type, label=label)
    if type_name is not None:
        field.type_name = type_name
    if packed:
        field.options.packed = True
    return field


def _add_map_field(message, name, number, value_type_name):
    entry = message.nested_type.add(name=name.capitalize() + "Entry")
    entry.options.map_entry = True
    _add_field(entry, "key", 1, _F.TYPE_STRING)
    _add_field(entry, "value", 2, _F.TYPE_MESSAGE, type_name=value_type_name)
    _add_field(
        message,
        name,
        number,
        _F.TYPE_MESSAGE,
        label=_F.LABEL_REPEATED,
        type_name=f".{_PACKAGE}.{message.name}.{entry.name}",
    )


def _file_descriptor_proto():
    fdp = descriptor_pb2.FileDescriptorProto(
        name="sagekit/amazon/record.proto", package=_PACKAGE, syntax="proto2"
    )

    for name, value_type in (
        ("Float32Tensor", _F.TYPE_FLOAT),
        ("Float64Tensor", _F.TYPE_DOUBLE),
        ("Int32Tensor", _F.TYPE_INT32),
    ):
        tensor = fdp.message_type.add(name=name)
        _add_field(tensor, "values", 1, value_type, label=_F.LABEL_REPEATED, packed=True)
        _add_field(tensor, "keys", 2, _F.TYPE_UINT64, label=_F.LABEL_REPEATED, packed=True)
        _add_field(tensor, "shape", 3, _F.TYPE_UINT64, label=_F.LABEL_REPEATED, packed=True)

    raw = fdp.message_type.add(name="Bytes")
    _add_field(raw, "value", 1, _F.TYPE_BYTES, label=_F.LABEL_REPEATED)
    _add_field(raw, "content_type", 2, _F.TYPE_STRING)

    value = fdp.message_type.add(name="Value")
    _add_field(value, "float32_tensor", 2, _F.TYPE_MESSAGE, type_name=f".{_PACKAGE}.Float32Tensor")
    _add_field(value, "float64_tensor", 3, _F.TYPE_MESSAGE, type_name=f".{_PACKAGE}.Float64Tensor")
    _add_field(value, "int32_tensor", 7, _F.TYPE_MESSAGE, type_name=f".{_PACKAGE}.Int32Tensor")
    _add_field(value, "bytes", 9, _F.TYPE_MESSAGE, type_name=f".{_PACKAGE}.Bytes")

    record = fdp.message_type.add(name="Record")
    _add_map_field(record, "features", 1, f".{_PACKAGE}.Value")
    _add_map_field(record, "label", 2, f".{_PACKAGE}.Value")
    _add_field(record, "uid", 3, _F.TYPE_STRING)
    _add_field(record, "metadata", 4, _F.TYPE_STRING)
    _add_field(record, "configuration", 5, _F.TYPE_STRING)

    return fdp


_POOL = descriptor_pool.DescriptorPool()
_POOL.Add(_file_descriptor_proto())


def _message_class(name):
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


Float32Tensor = _message_class("Float32Tensor")
Float64Tensor = _message_class("Float64Tensor")
Int32Tensor = _message_class("Int32Tensor")
Bytes = _message_class("Bytes")
Value = _message_class("Value")
Record = _message_class("Record")
