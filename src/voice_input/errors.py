"""Exception classes for the recording session pipeline."""


class VoiceInputError(Exception):
    """Base exception for voice input errors."""
    pass


class DeviceError(VoiceInputError):
    """Exception raised when the audio input device cannot be used."""
    pass


class NoInputDevice(DeviceError):
    """Exception raised when no default input device is available."""
    pass


class UnsupportedFormat(DeviceError):
    """Exception raised when the device format cannot be captured as float32."""
    pass


class ResampleError(VoiceInputError):
    """Exception raised for degenerate resampling input."""
    pass


class SegmentationError(VoiceInputError):
    """Exception raised when speech segmentation fails internally."""
    pass


class TranscriptionError(VoiceInputError):
    """Exception raised when the transcription engine fails."""
    pass


class RefinementError(VoiceInputError):
    """Exception raised when LLM refinement fails."""
    pass


class DeliveryError(VoiceInputError):
    """Exception raised when text could not be delivered to the user.

    The session still produced valid text, available as ``text``.
    """

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


class StateError(VoiceInputError):
    """Exception raised for commands issued in the wrong session state."""
    pass


class AlreadyRecording(StateError):
    """Exception raised when starting while a session is active."""
    pass


class NotRecording(StateError):
    """Exception raised when stopping while not recording."""
    pass


class NoAudioCaptured(StateError):
    """Exception raised when a recording produced no samples."""
    pass
