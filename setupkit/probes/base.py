"""
Service Probes

Connectivity checks are a collaborator: the pipeline only records the
pass/fail results a probe returns. ConfigurationProbe is the built-in
probe and checks that each service is addressable without touching the
network.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List

from ..config.models import CacheConfig, ConfigModel, DatabaseConfig, MailConfig, ServiceType
from ..utils.clock import utc_now


@dataclass
class ConnectionTestResult:
    """Outcome of probing one service."""
    service: str
    success: bool
    message: str = ""
    tested_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "success": self.success,
            "message": self.message,
            "tested_at": self.tested_at.isoformat(),
        }


class ServiceProbe(ABC):
    """Base class for service probes."""

    def test_all(self, cfg: ConfigModel) -> List[ConnectionTestResult]:
        """
        Probe every configured service.

        Mail is only probed when a server is set.
        """
        results = [self.test_database(cfg.database), self.test_cache(cfg.cache)]
        if cfg.mail.server:
            results.append(self.test_mail(cfg.mail))
        return results

    @abstractmethod
    def test_database(self, cfg: DatabaseConfig) -> ConnectionTestResult:
        pass

    @abstractmethod
    def test_cache(self, cfg: CacheConfig) -> ConnectionTestResult:
        pass

    @abstractmethod
    def test_mail(self, cfg: MailConfig) -> ConnectionTestResult:
        pass


class ConfigurationProbe(ServiceProbe):
    """
    Probe that only checks connection parameters.

    Docker-managed services are not running yet during setup, so a
    complete set of parameters is the best available signal.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def _result(self, service: str, reason: str, success: bool = False) -> ConnectionTestResult:
        prefix = "key:messages" if success else f"key:validation.{service}"
        return ConnectionTestResult(
            service=service,
            success=success,
            message=f"{prefix}.{reason}",
            tested_at=self.clock(),
        )

    def test_database(self, cfg: DatabaseConfig) -> ConnectionTestResult:
        if not cfg.host:
            return self._result("database", "host_required")
        if not 0 < cfg.port <= 65535:
            return self._result("database", "port_invalid")
        if not cfg.name:
            return self._result("database", "name_required")
        if cfg.service_type == ServiceType.DOCKER.value:
            if not cfg.super_user:
                return self._result("database", "super_user_required")
            if not cfg.super_password:
                return self._result("database", "super_password_required")
        if not cfg.app_user:
            return self._result("database", "app_user_required")
        if not cfg.app_password:
            return self._result("database", "app_password_required")
        return self._result("database", "database_config_validated", success=True)

    def test_cache(self, cfg: CacheConfig) -> ConnectionTestResult:
        if not cfg.host:
            return self._result("cache", "host_required")
        if not 0 < cfg.port <= 65535:
            return self._result("cache", "port_invalid")
        return self._result("cache", "cache_config_validated", success=True)

    def test_mail(self, cfg: MailConfig) -> ConnectionTestResult:
        if not 0 < cfg.port <= 65535:
            return self._result("mail", "port_invalid")
        if not cfg.user or not cfg.password:
            return self._result("mail", "auth_failed")
        return self._result("mail", "mail_config_validated", success=True)
