"""Predicate factories used to validate algorithm hyperparameters."""


def gt(minimum):
    def validate(value):
        return value > minimum

    validate.__doc__ = "value must be greater than {}".format(minimum)
    return validate


def ge(minimum):
    def validate(value):
        return value >= minimum

    validate.__doc__ = "value must be greater than or equal to {}".format(minimum)
    return validate


def lt(maximum):
    def validate(value):
        return value < maximum

    validate.__doc__ = "value must be less than {}".format(maximum)
    return validate


def le(maximum):
    def validate(value):
        return value <= maximum

    validate.__doc__ = "value must be less than or equal to {}".format(maximum)
    return validate


def isin(*expected):
    def validate(value):
        return value in expected

    validate.__doc__ = "value must be one of: {}".format(", ".join(map(str, expected)))
    return validate


def istype(expected):
    def validate(value):
        return isinstance(value, expected)

    validate.__doc__ = "value must be of type {}".format(expected)
    return validate
