"""Deployment artifact building components."""

from .artifacts import ArtifactGenerator, GenerationResult
from .domains import root_domain
from .keys import generate_private_key_pem, is_private_key_pem

__all__ = [
    "ArtifactGenerator",
    "GenerationResult",
    "root_domain",
    "generate_private_key_pem",
    "is_private_key_pem",
]
