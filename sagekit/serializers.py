"""Encode Python objects into request bodies for endpoint invocation."""

from __future__ import annotations

import abc
import csv
import io
import json

import numpy as np


class BaseSerializer(abc.ABC):
    """Turn data into a request body with a fixed content type."""

    CONTENT_TYPE = "application/octet-stream"

    @abc.abstractmethod
    def serialize(self, data):
        """Serialize data into the request body."""

    @property
    def content_type(self):
        return self.CONTENT_TYPE


class CSVSerializer(BaseSerializer):
    """Serialize data of various formats to CSV.

    Strings and file-like objects pass through. Sequences become one row,
    and nested sequences or 2-D arrays one row per element.
    """

    CONTENT_TYPE = "text/csv"

    def serialize(self, data):
        if hasattr(data, "read"):
            return data.read()

        if isinstance(data, str):
            return data

        if isinstance(data, np.ndarray):
            if data.ndim > 2:
                raise ValueError(f"Unable to serialize an array with {data.ndim} dimensions to CSV.")
            data = data.tolist() if data.ndim else [data.item()]

        if not data:
            raise ValueError(f"{data} cannot be serialized to CSV.")

        if _is_sequence_like(data[0]):
            return "\n".join(self._serialize_row(row) for row in data)
        return self._serialize_row(data)

    @staticmethod
    def _serialize_row(data):
        if isinstance(data, str):
            return data
        if isinstance(data, np.ndarray):
            data = np.ndarray.flatten(data)
        if hasattr(data, "__len__"):
            if len(data) == 0:
                raise ValueError(f"Cannot serialize empty array {data}")
            buffer = io.StringIO()
            csv.writer(buffer, lineterminator="").writerow(data)
            return buffer.getvalue()
        raise ValueError(f"Unable to handle input format: {type(data)}")


class JSONSerializer(BaseSerializer):
    """Serialize data to a JSON document; numpy arrays become nested lists."""

    CONTENT_TYPE = "application/json"

    def serialize(self, data):
        if isinstance(data, dict):
            return json.dumps({k: _ndarray_to_list(v) for k, v in data.items()})
        if hasattr(data, "read"):
            return data.read()
        return json.dumps(_ndarray_to_list(data))


class NumpySerializer(BaseSerializer):
    """Serialize data to the NPY format."""

    CONTENT_TYPE = "application/x-npy"

    def __init__(self, dtype=None):
        self.dtype = dtype

    def serialize(self, data):
        if isinstance(data, np.ndarray):
            if data.size == 0:
                raise ValueError("Cannot serialize empty array.")
            return self._serialize_array(data)

        if isinstance(data, list):
            if len(data) == 0:
                raise ValueError("Cannot serialize empty array.")
            return self._serialize_array(np.array(data, self.dtype))

        if hasattr(data, "read"):
            return data.read()

        return self._serialize_array(np.array(data))

    @staticmethod
    def _serialize_array(array):
        buffer = io.BytesIO()
        np.save(buffer, array)
        return buffer.getvalue()


class IdentitySerializer(BaseSerializer):
    """Send data as is, with a caller-chosen content type."""

    def __init__(self, content_type="application/octet-stream"):
        self._content_type = content_type

    @property
    def content_type(self):
        return self._content_type

    def serialize(self, data):
        return data


def _is_sequence_like(obj):
    return hasattr(obj, "__iter__") and hasattr(obj, "__getitem__") and not isinstance(obj, str)


def _ndarray_to_list(data):
    return data.tolist() if isinstance(data, np.ndarray) else data
