"""Import and regeneration of previous exports."""

from .reconciler import (
    ImportReconciler,
    ImportResult,
    find_available_output_dir,
    resolve_output_dir,
)
from .resolvers import (
    CertificateResolver,
    CanonicalCertificateResolver,
    CertbotCertificateResolver,
    resolve_certificate,
)

__all__ = [
    "ImportReconciler",
    "ImportResult",
    "find_available_output_dir",
    "resolve_output_dir",
    "CertificateResolver",
    "CanonicalCertificateResolver",
    "CertbotCertificateResolver",
    "resolve_certificate",
]
