from .config import OptimizerConfig, create_provider
from .errors import (
    CredentialError,
    GenerationFailure,
    InputError,
    OptimizerError,
    PipelineCancelled,
)
from .estimate import estimate_lines
from .inputs import SourceInputs, gather_inputs
from .normalize import normalize_envelope
from .pipeline import ResumeOptimizer
from .validation import validate_resume

__all__ = [
    "OptimizerConfig",
    "OptimizerError",
    "InputError",
    "CredentialError",
    "GenerationFailure",
    "PipelineCancelled",
    "ResumeOptimizer",
    "SourceInputs",
    "create_provider",
    "estimate_lines",
    "gather_inputs",
    "normalize_envelope",
    "validate_resume",
]
