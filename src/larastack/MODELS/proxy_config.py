"""
Models for the reverse-proxy (nginx server block) configuration and for the
routing decision taken for a single request.
"""
from typing import List, Dict, Optional, Tuple
from pydantic import BaseModel
from enum import Enum

class LocationModifier(str, Enum):
    """
    Location match modifiers, as written before the pattern.
    """
    PREFIX = ""
    EXACT = "="
    REGEX = "~"
    REGEX_CASELESS = "~*"
    PREFERRED_PREFIX = "^~"

class LocationBlock(BaseModel):
    """
    A ``location`` block and the directives the matcher understands.
    """
    modifier: LocationModifier = LocationModifier.PREFIX
    pattern: str
    try_files: List[str] = []
    fastcgi_pass: Optional[str] = None
    fastcgi_index: Optional[str] = None
    fastcgi_split_path_info: Optional[str] = None
    fastcgi_params: Dict[str, str] = {}
    includes: List[str] = []
    deny: List[str] = []
    allow: List[str] = []
    root: Optional[str] = None

    @property
    def is_regex(self) -> bool:
        return self.modifier in (LocationModifier.REGEX, LocationModifier.REGEX_CASELESS)

    @property
    def denies_all(self) -> bool:
        return 'all' in self.deny

    @property
    def backend(self) -> Optional[Tuple[str, int]]:
        """
        The ``host:port`` of ``fastcgi_pass`` split into a tuple, or None when
        the location does not forward (or forwards to a unix socket).
        """
        if not self.fastcgi_pass or self.fastcgi_pass.startswith('unix:'):
            return None
        host, _, port = self.fastcgi_pass.rpartition(':')
        if not host or not port.isdigit():
            return None
        return host, int(port)

    def __str__(self) -> str:
        if self.modifier == LocationModifier.PREFIX:
            return f"location {self.pattern}"
        return f"location {self.modifier.value} {self.pattern}"

class ProxyConfig(BaseModel):
    """
    The parts of an nginx ``server`` block that decide where a request goes.
    """
    listen: List[str] = []
    server_names: List[str] = []
    root: str = "html"
    index: List[str] = ["index.html"]
    locations: List[LocationBlock] = []

    @property
    def listen_ports(self) -> List[int]:
        ports = []
        for value in self.listen:
            port = value.rpartition(':')[2].split()[0]
            if port.isdigit():
                ports.append(int(port))
        return ports

    def php_location(self) -> Optional[LocationBlock]:
        """
        Returns the first location that forwards to a FastCGI backend.
        """
        for location in self.locations:
            if location.fastcgi_pass:
                return location
        return None

class RouteAction(str, Enum):
    """
    What the proxy does with a request.
    """
    SERVE_STATIC = "serve_static"
    FORWARD = "forward"
    DENY = "deny"
    RESPOND = "respond"

class RouteDecision(BaseModel):
    """
    The outcome of routing one request path through a ProxyConfig.
    """
    action: RouteAction
    uri: str
    query_string: str = ""
    location: Optional[str] = None
    status: int = 200
    file_path: Optional[str] = None
    backend_host: Optional[str] = None
    backend_port: Optional[int] = None
    script_name: Optional[str] = None
    fastcgi_params: Dict[str, str] = {}
    redirects: List[str] = []

    @property
    def backend(self) -> Optional[str]:
        if self.backend_host is None:
            return None
        return f"{self.backend_host}:{self.backend_port}"
