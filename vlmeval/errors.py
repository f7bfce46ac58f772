"""Exception hierarchy for model loading, input processing, and generation."""

from typing import Optional


class VLMEvalError(Exception):
    """Base class for all vlmeval errors."""


class DecodingError(VLMEvalError):
    """A JSON configuration document could not be decoded into its schema."""

    def __init__(self, file_name: str, cause: Exception):
        self.file_name = file_name
        self.cause = cause
        super().__init__(f"Failed to decode {file_name}: {cause}")


# ---------------------------------------------------------------------------
# Model factory errors
# ---------------------------------------------------------------------------

class ModelFactoryError(VLMEvalError):
    """Base class for failures while assembling a model context."""


class ConfigurationDecodingError(ModelFactoryError):
    """A configuration file failed schema decoding for a given preset."""

    def __init__(self, file_name: str, preset_name: str, cause: Exception):
        self.file_name = file_name
        self.preset_name = preset_name
        self.cause = cause
        super().__init__(
            f"Failed to parse {file_name} for model '{preset_name}': {cause}"
        )


class UnsupportedTypeError(ModelFactoryError):
    """A family tag has no registered builder."""

    kind = "type"

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unsupported {self.kind}: {tag}")


class UnsupportedModelTypeError(UnsupportedTypeError):
    kind = "model type"


class UnsupportedProcessorTypeError(UnsupportedTypeError):
    kind = "processor type"


class ArtifactMissingError(ModelFactoryError):
    """A required file is absent from a bundled model directory."""

    def __init__(self, file_name: str, directory: Optional[str] = None):
        self.file_name = file_name
        self.directory = directory
        location = f" ({directory})" if directory else ""
        super().__init__(f"Unsupported model: {file_name} not found in bundle{location}")


class WeightApplicationError(ModelFactoryError):
    """Stored weights do not match the parameters of the constructed model."""


# ---------------------------------------------------------------------------
# Input processing errors
# ---------------------------------------------------------------------------

class VLMError(VLMEvalError):
    """Base class for user input errors raised while preparing model input."""


class ImageRequiredError(VLMError):
    def __init__(self):
        super().__init__("An image is required for this operation.")


class SingleImageAllowedError(VLMError):
    def __init__(self):
        super().__init__("Only a single image is allowed for this operation.")


class SingleVideoAllowedError(VLMError):
    def __init__(self):
        super().__init__("Only a single video is allowed for this operation.")


class SingleMediaTypeAllowedError(VLMError):
    def __init__(self):
        super().__init__(
            "Only a single media type (image or video) is allowed for this operation."
        )


class ImageProcessingError(VLMError):
    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Failed to process the image: {details}")


class ProcessingError(VLMError):
    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Processing error: {details}")


# ---------------------------------------------------------------------------
# Generation errors
# ---------------------------------------------------------------------------

class GenerationFailure(VLMEvalError):
    """Any failure raised while producing a streamed generation."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)
