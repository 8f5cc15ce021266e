"""
Core interfaces for dependency injection
"""
from abc import ABC, abstractmethod
from typing import Any, Optional


class ConnectionFactory(ABC):
    """SSH connection factory interface"""
    
    @abstractmethod
    def create(self, params: Any) -> Any:
        """
        Create and connect a transport.
        
        The returned object must provide ``is_active()``, ``peer_closed()``,
        ``open_channel(timeout)`` and ``close()``.
        """
        pass


class PromptProvider(ABC):
    """User prompt interface"""
    
    @abstractmethod
    def prompt(self, message: str, default: Optional[str] = None, password: bool = False) -> str:
        """Prompt user for input"""
        pass
