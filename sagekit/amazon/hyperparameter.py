"""Validated hyperparameters declared as class attributes of an estimator."""

from __future__ import annotations

import json

from ..errors import ValidationError


class Hyperparameter:
    """An algorithm hyperparameter with optional validation.

    Implemented as a data descriptor: values live in the owning instance's
    ``_hyperparameters`` dict, keyed by the hyperparameter name. Assigning
    None clears the value; cleared values are never sent to training.
    """

    def __init__(self, name, validate=lambda _: True, validation_message="", data_type=str):
        """Initialize a Hyperparameter.

        Args:
            name (str): The name sent to the training job.
            validate (callable or list[callable]): Predicates that each return
                False when a value is invalid.
            validation_message (str): Usage guide shown on validation failure.
            data_type (callable): Converts assigned values, e.g. ``int``.
        """
        self.validation = validate
        self.validation_message = validation_message
        self.name = name
        self.data_type = data_type
        try:
            iter(self.validation)
        except TypeError:
            self.validation = [self.validation]

    def validate(self, value):
        if value is None:
            return
        for valid in self.validation:
            if not valid(value):
                error_message = "Invalid hyperparameter value {} for {}".format(value, self.name)
                if self.validation_message:
                    error_message = error_message + ". Expecting: " + self.validation_message
                raise ValidationError(error_message)

    def __get__(self, obj, objtype):
        if obj is None:
            return self
        if "_hyperparameters" not in dir(obj) or self.name not in obj._hyperparameters:
            raise AttributeError(self.name)
        return obj._hyperparameters[self.name]

    def __set__(self, obj, value):
        value = None if value is None else self.data_type(value)
        self.validate(value)
        if "_hyperparameters" not in dir(obj):
            obj._hyperparameters = dict()
        obj._hyperparameters[self.name] = value

    def __delete__(self, obj):
        del obj._hyperparameters[self.name]

    @staticmethod
    def serialize_all(obj):
        """Return all non-None hyperparameter values on ``obj`` as ``dict[str, str]``."""
        if "_hyperparameters" not in dir(obj):
            return {}
        return {
            k: json.dumps(v) if isinstance(v, list) else str(v)
            for k, v in obj._hyperparameters.items()
            if v is not None
        }
