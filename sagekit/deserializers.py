"""Decode endpoint response bodies into Python objects.

Each deserializer takes the ``StreamingBody`` returned by ``invoke_endpoint``
and its content type, reads it and closes it.
"""

from __future__ import annotations

import abc
import codecs
import csv
import io
import json

import numpy as np
import pandas as pd


class BaseDeserializer(abc.ABC):
    ACCEPT = ("*/*",)

    @abc.abstractmethod
    def deserialize(self, stream, content_type):
        """Deserialize data received from an inference endpoint."""

    @property
    def accept(self):
        return self.ACCEPT


class StringDeserializer(BaseDeserializer):
    ACCEPT = ("application/json",)

    def __init__(self, encoding="UTF-8", accept=None):
        self.encoding = encoding
        if accept is not None:
            self.ACCEPT = tuple(accept) if isinstance(accept, (list, tuple)) else (accept,)

    def deserialize(self, stream, content_type):
        try:
            return stream.read().decode(self.encoding)
        finally:
            stream.close()


class BytesDeserializer(BaseDeserializer):
    def deserialize(self, stream, content_type):
        try:
            return stream.read()
        finally:
            stream.close()


class CSVDeserializer(BaseDeserializer):
    """Decode CSV into a list of rows, each a list of strings."""

    ACCEPT = ("text/csv",)

    def __init__(self, encoding="utf-8"):
        self.encoding = encoding

    def deserialize(self, stream, content_type):
        try:
            decoded_string = stream.read().decode(self.encoding)
            return list(csv.reader(decoded_string.splitlines()))
        finally:
            stream.close()


class JSONDeserializer(BaseDeserializer):
    ACCEPT = ("application/json",)

    def deserialize(self, stream, content_type):
        try:
            return json.load(codecs.getreader("utf-8")(stream))
        finally:
            stream.close()


class NumpyDeserializer(BaseDeserializer):
    """Decode CSV, JSON or NPY responses into a numpy array."""

    ACCEPT = ("application/x-npy",)

    def __init__(self, dtype=None, allow_pickle=True):
        self.dtype = dtype
        self.allow_pickle = allow_pickle

    def deserialize(self, stream, content_type):
        try:
            if content_type == "text/csv":
                return np.genfromtxt(
                    codecs.getreader("utf-8")(stream), delimiter=",", dtype=self.dtype
                )
            if content_type == "application/json":
                return np.array(json.load(codecs.getreader("utf-8")(stream)), dtype=self.dtype)
            if content_type == "application/x-npy":
                return np.load(io.BytesIO(stream.read()), allow_pickle=self.allow_pickle)
        finally:
            stream.close()

        raise ValueError(f"{content_type} cannot be deserialized.")


class PandasDeserializer(BaseDeserializer):
    """Decode CSV or JSON responses into a pandas DataFrame."""

    ACCEPT = ("text/csv", "application/json")

    def deserialize(self, stream, content_type):
        try:
            if content_type == "text/csv":
                return pd.read_csv(io.BytesIO(stream.read()))
            if content_type == "application/json":
                return pd.read_json(io.BytesIO(stream.read()))
        finally:
            stream.close()

        raise ValueError(f"{content_type} cannot be deserialized.")
