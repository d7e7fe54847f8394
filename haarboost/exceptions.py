"""
Error taxonomy for the Haar weak learner.

Every error records the stage that failed (search, score, save, load) so the
boosting loop can report where a round or a model load went wrong.
"""

from typing import Optional


class HaarLearnerError(Exception):
    """Base class for failures surfaced to the boosting loop."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        if stage:
            message = f"[{stage}] {message}"
        super().__init__(message)


class UnknownFeatureType(HaarLearnerError):
    """A feature type code was never registered."""

    def __init__(self, code: str, stage: Optional[str] = None):
        self.code = code
        super().__init__(f"Unknown feature type: '{code}'", stage)


class NoCandidateAvailable(HaarLearnerError):
    """Every requested feature type produced an empty candidate sequence."""

    def __init__(self, feature_types, iisize):
        self.feature_types = list(feature_types)
        self.iisize = tuple(iisize)
        width, height = self.iisize
        super().__init__(
            f"No candidate configuration for types {self.feature_types} "
            f"on a {width}x{height} integral image",
            stage='search'
        )


class MalformedSerializedFeature(HaarLearnerError):
    """A serialized feature record is missing a tag, out of order or unparsable."""

    def __init__(self, message: str, tag: Optional[str] = None):
        self.tag = tag
        if tag is not None:
            message = f"<{tag}>: {message}"
        super().__init__(message, stage='load')
