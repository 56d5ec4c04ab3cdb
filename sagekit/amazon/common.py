"""RecordIO-protobuf encoding for the built-in algorithms."""

from __future__ import annotations

import io
import logging
import struct

import numpy as np

from ..deserializers import BaseDeserializer
from ..errors import ValidationError
from ..serializers import BaseSerializer
from .record_pb2 import Record

logger = logging.getLogger(__name__)

RECORDIO_PROTOBUF = "application/x-recordio-protobuf"

# MXNet RecordIO frame marker
_KMAGIC = 0xCED7230A

# records are padded to a multiple of 4 bytes
_PADDING = {amount: bytearray([0x00] * amount) for amount in range(4)}


class RecordSerializer(BaseSerializer):
    """Serialize a numpy array to RecordIO-protobuf, one record per row."""

    CONTENT_TYPE = RECORDIO_PROTOBUF

    def serialize(self, data):
        if not isinstance(data, np.ndarray):
            data = np.asarray(data)
        if len(data.shape) == 1:
            data = data.reshape(1, data.shape[0])
        if len(data.shape) != 2:
            raise ValidationError("Expected a 1D or 2D array, but got a %dD array instead." % len(data.shape))

        buffer = io.BytesIO()
        write_numpy_to_dense_tensor(buffer, data)
        buffer.seek(0)
        return buffer.getvalue()


class RecordDeserializer(BaseDeserializer):
    """Deserialize a RecordIO-protobuf response into a list of ``Record`` messages."""

    ACCEPT = (RECORDIO_PROTOBUF,)

    def deserialize(self, stream, content_type):
        try:
            return read_records(stream)
        finally:
            stream.close()


def _write_feature_tensor(resolved_type, record, vector):
    if resolved_type == "Int32":
        record.features["values"].int32_tensor.values.extend(vector)
    elif resolved_type == "Float64":
        record.features["values"].float64_tensor.values.extend(vector)
    elif resolved_type == "Float32":
        record.features["values"].float32_tensor.values.extend(vector)


def _write_label_tensor(resolved_type, record, scalar):
    if resolved_type == "Int32":
        record.label["values"].int32_tensor.values.extend([scalar])
    elif resolved_type == "Float64":
        record.label["values"].float64_tensor.values.extend([scalar])
    elif resolved_type == "Float32":
        record.label["values"].float32_tensor.values.extend([scalar])


def write_numpy_to_dense_tensor(file, array, labels=None):
    """Write a 2-D array, and optional labels, as dense tensor records to ``file``.

    Raises:
        ValidationError: If ``array`` is not 2-D, ``labels`` not 1-D, or their
            lengths disagree.
    """
    if not len(array.shape) == 2:
        raise ValidationError("Array must be a Matrix")
    if labels is not None:
        if not len(labels.shape) == 1:
            raise ValidationError("Labels must be a Vector")
        if labels.shape[0] != array.shape[0]:
            raise ValidationError(
                "Label shape {} not compatible with array shape {}".format(labels.shape, array.shape)
            )
        resolved_label_type = _resolve_type(labels.dtype)
    resolved_type = _resolve_type(array.dtype)

    record = Record()
    for index, vector in enumerate(array):
        record.Clear()
        _write_feature_tensor(resolved_type, record, vector.tolist())
        if labels is not None:
            _write_label_tensor(resolved_label_type, record, labels[index].item())
        _write_recordio(file, record.SerializeToString())


def read_records(file):
    """Eagerly read every ``Record`` in a RecordIO-protobuf stream."""
    records = []
    for record_data in read_recordio(file):
        record = Record()
        record.ParseFromString(record_data)
        records.append(record)
    return records


def _write_recordio(f, data):
    length = len(data)
    f.write(struct.pack("I", _KMAGIC))
    f.write(struct.pack("I", length))
    pad = (((length + 3) >> 2) << 2) - length
    f.write(data)
    f.write(_PADDING[pad])


def read_recordio(f):
    """Yield the raw payload of each RecordIO frame until the stream ends."""
    while True:
        header = f.read(4)
        if len(header) < 4:
            return
        (read_kmagic,) = struct.unpack("I", header)
        if read_kmagic != _KMAGIC:
            raise ValidationError(f"Invalid RecordIO magic number: {read_kmagic:#x}")
        (len_record,) = struct.unpack("I", f.read(4))
        pad = (((len_record + 3) >> 2) << 2) - len_record
        yield f.read(len_record)
        if pad:
            f.read(pad)


def _resolve_type(dtype):
    if dtype == np.dtype(int) or dtype == np.dtype("int32"):
        return "Int32"
    if dtype == np.dtype(float):
        return "Float64"
    if dtype == np.dtype("float32"):
        return "Float32"
    raise ValidationError("Unsupported dtype {} on array".format(dtype))
