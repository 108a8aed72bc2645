"""
Exceptions raised by the voice print pipeline
"""


class VoxprintError(Exception):
    """Base class for every error raised by voxprint"""


class InvalidArgumentError(VoxprintError, ValueError):
    """Null key, null universal model, sub-floor sample rate or bad configuration"""


class DuplicateKeyError(VoxprintError, KeyError):
    """A voice print is already enrolled under this key"""

    def __init__(self, key):
        super().__init__(f"The user key already exists: [{key}]")
        self.key = key

    def __str__(self):
        return self.args[0]


class UnknownKeyError(VoxprintError, KeyError):
    """No voice print is enrolled under this key"""

    def __init__(self, key):
        super().__init__(f"No voice print linked to this user key [{key}]")
        self.key = key

    def __str__(self):
        return self.args[0]


class EmptyStoreError(VoxprintError, RuntimeError):
    """Identification requested before any voice print was enrolled"""


class DimensionMismatchError(VoxprintError, ValueError):
    """Two feature vectors of different length were compared or merged"""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Feature vectors differ in length: {expected} != {actual}")
        self.expected = expected
        self.actual = actual


class FeatureExtractionError(VoxprintError, ValueError):
    """The sample cannot produce a feature vector (e.g. shorter than one frame)"""


class UnsupportedAudioFormatError(VoxprintError):
    """The audio decoder does not understand the file's container or codec"""


class SampleRateMismatchError(VoxprintError, ValueError):
    """The file's native sample rate differs from the expected one"""

    def __init__(self, expected: float, actual: float, source: str = ""):
        where = f" for {source}" if source else ""
        super().__init__(
            f"The sample rate{where} is different than the configured sample rate: "
            f"[{actual}] != [{expected}]"
        )
        self.expected = expected
        self.actual = actual
