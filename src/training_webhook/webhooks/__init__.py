"""
Typeform training results webhook package.
Signature verification, scoring and result processing with injected collaborators.
"""

from .models import ProcessingResult, TypeformPayload
from .services import TrainingResultProcessor

__all__ = ["TypeformPayload", "ProcessingResult", "TrainingResultProcessor"]
