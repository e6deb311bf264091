"""
Exceptions raised by the face lab.
"""


class FaceLabError(Exception):
    """Base exception for the face lab."""


class ModelLoadFailure(FaceLabError):
    """Raised when the face-analysis model weights cannot be loaded."""


class ModelsNotLoaded(FaceLabError):
    """Raised when an operation needs models that have not been loaded yet."""


class CameraAccessDenied(FaceLabError):
    """Raised when the camera cannot be opened."""


class RegistrationError(FaceLabError):
    """Raised when a registration request is rejected."""


class NoFaceDetected(RegistrationError):
    """Raised when none of the registration images contains a face."""


class InvalidImportDocument(FaceLabError):
    """Raised when an imported identity document cannot be accepted."""
