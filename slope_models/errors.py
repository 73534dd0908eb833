"""
Exceptions raised by the sliding displacement models
"""


class DomainError(ValueError):
    """an input falls outside the mathematical domain of the model,
    e.g. the logarithm of a non-positive intensity measure"""


class ConfigurationError(ValueError):
    """an unknown model variant or a malformed coefficient set or configuration"""
