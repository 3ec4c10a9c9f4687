"""
Models for defining services: port mappings, mounts and dependencies.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field
from enum import Enum

class MountKind(str, Enum):
    """
    How the source of a mount is provided.
    """
    BIND = "bind"
    VOLUME = "volume"
    ANONYMOUS = "anonymous"

class PortMapping(BaseModel):
    """
    A published port: host side -> container side.
    """
    container: int
    host: Optional[int] = None
    host_ip: Optional[str] = None
    protocol: str = "tcp"

    def __str__(self) -> str:
        container = f"{self.container}/{self.protocol}" if self.protocol != "tcp" else str(self.container)
        if self.host is None:
            return container
        if self.host_ip:
            return f"{self.host_ip}:{self.host}:{container}"
        return f"{self.host}:{container}"

class VolumeMount(BaseModel):
    """
    Defines a mapping between a host path (or named volume) and a service path.
    """
    source: Optional[str] = None
    target: str
    read_only: bool = False
    kind: MountKind = MountKind.BIND

    @classmethod
    def classify(cls, source: Optional[str]) -> MountKind:
        """
        Compose treats a source that looks like a path as a bind mount and
        anything else as the name of a volume.
        """
        if not source:
            return MountKind.ANONYMOUS
        if source.startswith(('.', '/', '~')) or (len(source) > 1 and source[1] == ':'):
            return MountKind.BIND
        return MountKind.VOLUME

class ServiceDefinition(BaseModel):
    """
    One service descriptor from the compose file.
    """
    name: str
    image_name: str = ""
    build_context: Optional[str] = None
    dockerfile_path: Optional[str] = None
    container_name: Optional[str] = None

    # Networking
    ports: List[PortMapping] = []
    networks: List[str] = []

    # Storage
    volumes: List[VolumeMount] = []

    # Environment
    environment: Dict[str, str] = {}
    environment_files: List[str] = []

    # Lifecycle
    depends_on: List[str] = []
    dependency_conditions: Dict[str, str] = Field(default_factory=dict)
    restart: str = "no"

    @property
    def bind_mounts(self) -> List[VolumeMount]:
        return [v for v in self.volumes if v.kind == MountKind.BIND]

    def published_port(self, container_port: int) -> Optional[int]:
        """
        Returns the host port that publishes ``container_port``, if any.
        """
        for mapping in self.ports:
            if mapping.container == container_port:
                return mapping.host
        return None
