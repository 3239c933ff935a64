class LayerError(Exception):
    """Base class for every failure reported by the layer contract.

    Each subclass also derives from the builtin exception a caller would
    expect for the same situation, so ``except ValueError`` keeps working.
    ``kind`` names the failure category for logs and CLI output.
    """

    kind = "layer"


class ConfigurationError(LayerError, ValueError):
    kind = "configuration"


class NumericInvariantError(LayerError, ValueError):
    kind = "numeric"


class ContractViolationError(LayerError, ValueError):
    kind = "contract"


class UnknownLayerTypeError(LayerError, LookupError):
    kind = "unknown_type"


class StoreFormatError(LayerError, IOError):
    kind = "store_format"
