from abc import ABC, abstractmethod
from typing import Any, Dict


class Provider(ABC):
    """Base interface for every remote collaborator (RPC, relay, managed wallet)."""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if the provider is configured to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass

    async def close(self) -> None:
        """Release any pooled connections."""
        return None
