"""Exceptions raised by the extraction package.

Extractors report missing or implausible values as data (Quantity,
YFunctionResult, ThetaResult). Only conditions that stop a whole file or TLM
sample from being processed are raised.
"""


class ExtractionError(Exception):
    """Base class for extraction failures."""


class MalformedInputError(ExtractionError):
    """A measurement table could not be read or has no usable columns."""


class TLMInsufficientDataError(ExtractionError):
    """A TLM sample has fewer than two resolvable distances."""

    def __init__(self, sample: str, n_points: int):
        self.sample = sample
        self.n_points = n_points
        super().__init__(
            f"TLM sample '{sample}' has {n_points} valid distance(s); at least 2 are required"
        )
