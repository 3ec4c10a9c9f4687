"""
Models for overall orchestration configuration.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel
from .service_definition import ServiceDefinition

class OrchestrationConfig(BaseModel):
    """
    Complete configuration for a multi-service stack.
    Equivalent to a parsed docker-compose.yml file. Services keep file order.
    """
    services: Dict[str, ServiceDefinition]
    networks: List[str] = []
    volumes: List[str] = []

    def get(self, name: str) -> Optional[ServiceDefinition]:
        return self.services.get(name)

    def find_by_image(self, prefix: str) -> Optional[ServiceDefinition]:
        """
        Returns the first service whose image repository starts with ``prefix``
        (``postgres`` matches ``postgres:15`` and ``postgres:16-alpine``).
        """
        for svc in self.services.values():
            repository = svc.image_name.rsplit('/', 1)[-1].split(':', 1)[0]
            if repository.startswith(prefix):
                return svc
        return None
