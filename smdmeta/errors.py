"""
Exceptions raised by smdmeta.

Argument validation errors derive from ValueError so that callers
catching the usual Python exception for bad arguments keep working.
"""


class SmdMetaError(Exception):
    """Base class for all smdmeta errors."""


class ConfigurationError(SmdMetaError, ValueError):
    """A meta-analysis object has the wrong summary measure."""


class MissingArgumentError(SmdMetaError, ValueError):
    """A mandatory argument is absent or could not be resolved."""


class LengthMismatchError(SmdMetaError, ValueError):
    """A per-study argument does not match the number of studies."""


class InvalidChoiceError(SmdMetaError, ValueError):
    """A string argument does not match any of the allowed values."""


class AggregationError(SmdMetaError):
    """The meta-analysis aggregator could not pool the studies."""
