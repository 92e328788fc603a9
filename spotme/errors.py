"""Exceptions shared across the scanner, face and API layers."""


class SpotMeError(Exception):
    """Base class for all SpotMe errors."""


class ImageLoadError(SpotMeError):
    """A candidate image could not be fetched or decoded."""


class NoFaceDetectedError(SpotMeError):
    """The reference image contains no detectable face."""


class DescriptorServiceError(SpotMeError):
    """The face descriptor service failed or returned a malformed response."""
