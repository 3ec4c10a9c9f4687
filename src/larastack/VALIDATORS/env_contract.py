"""
Checks the application's DB_* environment against the compose descriptor.

Inside a container ``127.0.0.1`` is the container itself, so the database is
reached through its service name, never through a loopback address.
"""
import ipaddress
from typing import Dict, List, Optional

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from .config_validator import ValidationIssue, Severity

REQUIRED_KEYS = ("DB_CONNECTION", "DB_HOST", "DB_PORT", "DB_DATABASE", "DB_USERNAME", "DB_PASSWORD")

# DB_* key -> variable of the postgres image that must carry the same value
CREDENTIAL_KEYS = {
    "DB_DATABASE": "POSTGRES_DB",
    "DB_USERNAME": "POSTGRES_USER",
    "DB_PASSWORD": "POSTGRES_PASSWORD",
}

# Laravel connection name per database image
CONNECTIONS = {
    "postgres": "pgsql",
    "mysql": "mysql",
    "mariadb": "mysql",
}

DEFAULT_PORTS = {
    "postgres": 5432,
    "mysql": 3306,
    "mariadb": 3306,
}


def is_loopback(host: str) -> bool:
    """
    True for ``localhost``, ``0.0.0.0`` and any loopback IP address.
    """
    host = host.strip().strip("[]").lower()
    if host in ("localhost", "localhost.localdomain", "ip6-localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_unspecified


class EnvContract:
    """
    Validates DB_CONNECTION, DB_HOST, DB_PORT, DB_DATABASE, DB_USERNAME and DB_PASSWORD.
    """

    def __init__(self, config: OrchestrationConfig, db_service: Optional[str] = None):
        """
        :param config: The parsed compose file.
        :param db_service: Name of the database service. Defaults to the first
                           service running a known database image.
        """
        self.config = config
        self.db = self._find_db(db_service)

    def _find_db(self, name: Optional[str]) -> Optional[ServiceDefinition]:
        if name:
            return self.config.get(name)
        for image in CONNECTIONS:
            svc = self.config.find_by_image(image)
            if svc is not None:
                return svc
        return None

    @property
    def engine(self) -> Optional[str]:
        if self.db is None:
            return None
        repository = self.db.image_name.rsplit("/", 1)[-1].split(":", 1)[0]
        for image in CONNECTIONS:
            if repository.startswith(image):
                return image
        return None

    def expected_environment(self) -> Dict[str, str]:
        """
        The values the application should use, derived from the database service.
        """
        if self.db is None:
            return {}
        env = {"DB_HOST": self.db.name}
        if self.engine:
            env["DB_CONNECTION"] = CONNECTIONS[self.engine]
            env["DB_PORT"] = str(DEFAULT_PORTS[self.engine])
        for key, source in CREDENTIAL_KEYS.items():
            if self.db.environment.get(source):
                env[key] = self.db.environment[source]
        return env

    def check(self, env: Dict[str, str]) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for key in REQUIRED_KEYS:
            if not env.get(key):
                issues.append(ValidationIssue(
                    code="missing-env",
                    message=f"{key} is not set",
                    remediation=f"set {key} in the application's .env",
                ))

        if self.db is None:
            issues.append(ValidationIssue(
                code="no-database-service",
                message="no database service found in the compose file",
            ))
            return issues

        expected = self.expected_environment()
        host = env.get("DB_HOST", "")
        if host and is_loopback(host):
            issues.append(ValidationIssue(
                code="loopback-db-host",
                message=(
                    f"DB_HOST={host} points at the app container itself; "
                    f"the database runs in service '{self.db.name}'"
                ),
                remediation=f"set DB_HOST={self.db.name}",
            ))
        elif host and host not in self.config.services:
            issues.append(ValidationIssue(
                code="unknown-db-host",
                severity=Severity.WARNING,
                message=f"DB_HOST={host} is not a service of this compose file",
                remediation=f"set DB_HOST={self.db.name}",
            ))

        for key in ("DB_CONNECTION", "DB_PORT") + tuple(CREDENTIAL_KEYS):
            value = env.get(key)
            want = expected.get(key)
            if value and want is not None and value != want:
                issues.append(ValidationIssue(
                    code="env-mismatch",
                    message=f"{key}={value} does not match the '{self.db.name}' service ({want})",
                    remediation=f"set {key}={want}",
                ))
        return issues
