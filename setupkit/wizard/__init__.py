"""
Setup Wizard Module

Token-gated setup sessions and the orchestrator that drives them.
"""

from .state import SessionState, SessionStatus
from .session import SessionToken, TokenManager
from .deployment import DeploymentMonitor, DeploymentState, DeploymentStatus
from .orchestrator import SetupOrchestrator

__all__ = [
    "SessionState",
    "SessionStatus",
    "SessionToken",
    "TokenManager",
    "DeploymentMonitor",
    "DeploymentState",
    "DeploymentStatus",
    "SetupOrchestrator",
]
