"""
Checks that a compose file and nginx server block form the expected
app / nginx / postgres topology.
"""
import posixpath
from typing import List, Optional

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.proxy_config import ProxyConfig
from ..MODELS.service_definition import MountKind
from ..MODELS.stack_settings import StackSettings
from ..PARSERS.dockerfile_parser import DockerfileParser
from .config_validator import ConfigValidator, ValidationIssue, Severity

SCRIPT_FILENAME = "$document_root$fastcgi_script_name"


class StackContract:
    """
    Compares parsed deployment files with StackSettings.
    """

    def __init__(self, settings: Optional[StackSettings] = None, base_dir: str = "."):
        self.settings = settings or StackSettings()
        self.base_dir = base_dir

    def check(self, config: OrchestrationConfig, proxy: Optional[ProxyConfig] = None) -> List[ValidationIssue]:
        issues = self.check_services(config)
        if proxy is not None:
            issues.extend(self.check_proxy(config, proxy))
        return issues

    def check_services(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        s = self.settings
        issues: List[ValidationIssue] = []

        expected = sorted(s.service_names)
        actual = sorted(config.services)
        if actual != expected:
            issues.append(ValidationIssue(
                code="unexpected-services",
                message=f"services are {actual}, expected exactly {expected}",
            ))

        db = config.get(s.db_service)
        if db is not None:
            for key in s.database.postgres_environment():
                if not db.environment.get(key):
                    issues.append(ValidationIssue(
                        code="missing-db-env",
                        service=db.name,
                        message=f"{key} must be set to a non-empty value",
                    ))
            if db.published_port(s.database.port) != s.database.host_port:
                issues.append(ValidationIssue(
                    code="db-port",
                    service=db.name,
                    severity=Severity.WARNING,
                    message=f"expected port mapping {s.database.host_port}:{s.database.port}",
                ))
            if not any(v.kind == MountKind.VOLUME and v.source == s.database.volume
                       and v.target == s.database.data_dir for v in db.volumes):
                issues.append(ValidationIssue(
                    code="db-volume",
                    service=db.name,
                    message=f"named volume '{s.database.volume}' must be mounted at {s.database.data_dir}",
                    remediation="without it the data is lost when the container is recreated",
                ))

        proxy = config.get(s.proxy_service)
        if proxy is not None and proxy.published_port(s.proxy_port) != s.proxy_host_port:
            issues.append(ValidationIssue(
                code="proxy-port",
                service=proxy.name,
                severity=Severity.WARNING,
                message=f"expected port mapping {s.proxy_host_port}:{s.proxy_port}",
            ))

        app = config.get(s.app_service)
        if app is not None and app.build_context:
            issues.extend(self.check_app_image(app.name, app.build_context, app.dockerfile_path))
        return issues

    def check_app_image(self, name: str, context: str, dockerfile: Optional[str]) -> List[ValidationIssue]:
        """
        The app image must be a PHP-FPM image listening on the FastCGI port.
        """
        path = ConfigValidator(self.base_dir).dockerfile_path(context, dockerfile)
        try:
            ast = DockerfileParser().parse(path)
        except FileNotFoundError:
            # Reported by ConfigValidator as missing-dockerfile
            return []

        issues = []
        base = ast.base_image or ""
        if "fpm" not in base:
            issues.append(ValidationIssue(
                code="app-not-fpm",
                service=name,
                severity=Severity.WARNING,
                message=f"base image '{base}' does not look like a PHP-FPM image",
            ))
        ports = ast.exposed_ports
        # Official php:*-fpm images already expose 9000
        if ports and self.settings.fastcgi_port not in ports:
            issues.append(ValidationIssue(
                code="app-port",
                service=name,
                message=f"Dockerfile exposes {ports}, nginx forwards to port {self.settings.fastcgi_port}",
            ))
        return issues

    def check_proxy(self, config: OrchestrationConfig, proxy: ProxyConfig) -> List[ValidationIssue]:
        s = self.settings
        issues: List[ValidationIssue] = []

        if s.proxy_port not in proxy.listen_ports:
            issues.append(ValidationIssue(
                code="proxy-listen",
                message=f"server block listens on {proxy.listen_ports}, expected {s.proxy_port}",
            ))

        location = proxy.php_location()
        if location is None:
            issues.append(ValidationIssue(
                code="no-php-location",
                message="no location forwards PHP requests to a FastCGI backend",
            ))
        else:
            if location.fastcgi_pass != s.fastcgi_pass:
                issues.append(ValidationIssue(
                    code="fastcgi-pass",
                    message=f"{location} forwards to {location.fastcgi_pass}, expected {s.fastcgi_pass}",
                ))
            backend = location.backend
            if backend is not None and backend[0] not in config.services:
                issues.append(ValidationIssue(
                    code="unknown-backend",
                    message=f"FastCGI host '{backend[0]}' is not a declared service",
                ))
            if location.fastcgi_params.get("SCRIPT_FILENAME") != SCRIPT_FILENAME:
                issues.append(ValidationIssue(
                    code="script-filename",
                    message=f"SCRIPT_FILENAME must be {SCRIPT_FILENAME}",
                    remediation=f"fastcgi_param SCRIPT_FILENAME {SCRIPT_FILENAME};",
                ))

        nginx = config.get(s.proxy_service)
        if nginx is not None:
            targets = [m.target.rstrip("/") or "/" for m in nginx.bind_mounts]
            root = posixpath.normpath(proxy.root)
            if not any(root == t or root.startswith(t.rstrip("/") + "/") for t in targets):
                issues.append(ValidationIssue(
                    code="root-not-mounted",
                    service=nginx.name,
                    message=f"document root {proxy.root} is not inside any bind mount of the proxy",
                ))
        return issues
