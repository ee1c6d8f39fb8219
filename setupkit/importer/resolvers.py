"""
Certificate Resolvers

Locating the certificate pair in a previous output directory is an
ordered list of candidate resolvers. Each one reports whether it found
a complete pair; the first hit wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..builder.domains import root_domain
from ..config.defaults import LEGACY_CERT_DIR, SSL_CERT_FILE, SSL_KEY_FILE
from ..config.models import ConfigModel


@dataclass
class Resolution:
    """Outcome of one resolver."""
    resolver: str
    cert_path: Path
    key_path: Path

    @property
    def found(self) -> bool:
        return self.cert_path.is_file() and self.key_path.is_file()


class CertificateResolver(ABC):
    """Base class for certificate pair candidates."""

    name = "base"

    @abstractmethod
    def candidate(self, input_dir: Path, cfg: ConfigModel) -> Tuple[Path, Path]:
        """Return the (certificate, key) paths this resolver looks at."""
        pass

    def resolve(self, input_dir: Path, cfg: ConfigModel) -> Resolution:
        cert, key = self.candidate(input_dir, cfg)
        return Resolution(resolver=self.name, cert_path=cert, key_path=key)


class CanonicalCertificateResolver(CertificateResolver):
    """The pair written by the generator under ``ssl/``."""

    name = "canonical"

    def candidate(self, input_dir: Path, cfg: ConfigModel) -> Tuple[Path, Path]:
        return input_dir / SSL_CERT_FILE, input_dir / SSL_KEY_FILE


class CertbotCertificateResolver(CertificateResolver):
    """Certificates left by the older certbot companion container."""

    name = "certbot"

    def candidate(self, input_dir: Path, cfg: ConfigModel) -> Tuple[Path, Path]:
        live = input_dir / LEGACY_CERT_DIR / root_domain(cfg.app.domain_name)
        return live / "fullchain.pem", live / "privkey.pem"


DEFAULT_RESOLVERS: Tuple[CertificateResolver, ...] = (
    CanonicalCertificateResolver(),
    CertbotCertificateResolver(),
)


def resolve_certificate(
    input_dir: Path,
    cfg: ConfigModel,
    resolvers: Sequence[CertificateResolver] = DEFAULT_RESOLVERS,
) -> Tuple[Optional[Resolution], List[Resolution]]:
    """
    Try each resolver in order.

    Returns:
        (first resolution that found a pair or None, every resolution tried)
    """
    tried = []
    for resolver in resolvers:
        resolution = resolver.resolve(input_dir, cfg)
        tried.append(resolution)
        if resolution.found:
            return resolution, tried
    return None, tried
