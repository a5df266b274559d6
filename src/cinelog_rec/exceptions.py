"""Errors raised at the external boundaries of the recommender."""


class MetadataUnavailable(Exception):
    """A movie fetch or search against the metadata catalog failed."""


class AIServiceUnavailable(Exception):
    """The generative text endpoint could not be reached or refused the request."""


class AIResponseUnparseable(Exception):
    """The generative text did not contain the expected JSON shape."""
