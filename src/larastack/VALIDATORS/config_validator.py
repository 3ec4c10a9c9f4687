# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Validation of a set of service descriptors before deployment.
"""
import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import MountKind
from ..RUNNERS.dependency_resolver import DependencyResolver


WILDCARD_ADDRESSES = ("0.0.0.0", "::")


class Severity(str, Enum):
    """How serious an issue is."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """A single finding of a validator."""

    code: str
    message: str
    service: Optional[str] = None
    severity: Severity = Severity.ERROR
    remediation: Optional[str] = None

    def __str__(self) -> str:
        where = f"[{self.service}] " if self.service else ""
        text = f"{self.severity.value}: {where}{self.message} ({self.code})"
        if self.remediation:
            text += f"\n  fix: {self.remediation}"
        return text


class ConfigValidationError(ValueError):
    """
    Raised by ``validate()`` when a descriptor set has errors.
    """

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        lines = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(f"{len(issues)} configuration error(s):\n{lines}")


def errors(issues: List[ValidationIssue]) -> List[ValidationIssue]:
    return [i for i in issues if i.severity == Severity.ERROR]


class ConfigValidator:
    """
    Rejects a descriptor set whose dependencies, ports or mounts cannot work.
    """

    def __init__(self, base_dir: str = "."):
        """
        Initializes the validator.

        :param base_dir: Directory that relative bind-mount sources and build contexts resolve against.
        """
        self.base_dir = base_dir
        self.resolver = DependencyResolver()

    def validate(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        """
        Runs all checks and raises if any of them produced an error.

        :return: The remaining warnings.
        :raises ConfigValidationError: When at least one error was found.
        """
        issues = self.check(config)
        found = errors(issues)
        if found:
            raise ConfigValidationError(found)
        return issues

    def check(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        """
        Runs all checks and returns every issue found, errors first.
        """
        issues: List[ValidationIssue] = []
        issues.extend(self.check_dependencies(config))
        issues.extend(self.check_host_ports(config))
        issues.extend(self.check_mounts(config))
        issues.extend(self.check_images(config))
        issues.extend(self.check_container_names(config))
        issues.sort(key=lambda i: i.severity != Severity.ERROR)
        return issues

    def check_dependencies(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        issues = []
        for name, svc in config.services.items():
            for dep in svc.depends_on:
                if dep not in config.services:
                    issues.append(ValidationIssue(
                        code="undeclared-dependency",
                        service=name,
                        message=f"depends on '{dep}', which is not a declared service",
                        remediation=f"declare a service named '{dep}' or remove it from depends_on",
                    ))
                elif dep == name:
                    issues.append(ValidationIssue(
                        code="dependency-cycle",
                        service=name,
                        message="depends on itself",
                    ))

        cycle = self.resolver.find_cycle(config)
        if cycle and len(cycle) > 2:
            issues.append(ValidationIssue(
                code="dependency-cycle",
                service=cycle[0],
                message=f"circular dependency: {' -> '.join(cycle)}",
            ))
        return issues

    def check_host_ports(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        """
        A host port may be published once per host address and protocol.
        An unset host address binds every interface and clashes with all others.
        """
        issues = []
        seen: Dict[Tuple[int, str], List[Tuple[str, Optional[str]]]] = {}
        for name, svc in config.services.items():
            for mapping in svc.ports:
                if mapping.host is None:
                    continue
                key = (mapping.host, mapping.protocol)
                host_ip = None if mapping.host_ip in WILDCARD_ADDRESSES else mapping.host_ip
                for other, other_ip in seen.get(key, []):
                    if other_ip and host_ip and other_ip != host_ip:
                        continue
                    where = "twice in the same service" if other == name else f"also by service '{other}'"
                    issues.append(ValidationIssue(
                        code="duplicate-host-port",
                        service=name,
                        message=f"host port {mapping.host}/{mapping.protocol} is published {where}",
                        remediation="publish the container port on a different host port",
                    ))
                    break
                seen.setdefault(key, []).append((name, host_ip))
        return issues

    def check_mounts(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        issues = []
        for name, svc in config.services.items():
            for mount in svc.volumes:
                if mount.kind == MountKind.BIND:
                    path = self.resolve(mount.source)
                    if not os.path.exists(path):
                        issues.append(ValidationIssue(
                            code="missing-bind-source",
                            service=name,
                            message=f"bind-mount source '{mount.source}' does not exist ({path})",
                            remediation=(
                                "create the file before starting; otherwise the engine creates "
                                "an empty directory in its place"
                            ),
                        ))
                elif mount.kind == MountKind.VOLUME and mount.source not in config.volumes:
                    issues.append(ValidationIssue(
                        code="undeclared-volume",
                        service=name,
                        message=f"named volume '{mount.source}' is not declared under top-level 'volumes'",
                        remediation=f"add '{mount.source}:' to the top-level volumes section",
                    ))
        return issues

    def check_images(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        issues = []
        for name, svc in config.services.items():
            if not svc.image_name and not svc.build_context:
                issues.append(ValidationIssue(
                    code="missing-image",
                    service=name,
                    message="has neither 'image' nor 'build'",
                ))
                continue
            if svc.build_context:
                dockerfile = self.dockerfile_path(svc.build_context, svc.dockerfile_path)
                if not os.path.isfile(dockerfile):
                    issues.append(ValidationIssue(
                        code="missing-dockerfile",
                        service=name,
                        message=f"build context has no Dockerfile ({dockerfile})",
                    ))
        return issues

    def check_container_names(self, config: OrchestrationConfig) -> List[ValidationIssue]:
        issues = []
        owners: Dict[str, str] = {}
        for name, svc in config.services.items():
            if not svc.container_name:
                continue
            if svc.container_name in owners:
                issues.append(ValidationIssue(
                    code="duplicate-container-name",
                    service=name,
                    message=f"container_name '{svc.container_name}' is already used by '{owners[svc.container_name]}'",
                ))
            else:
                owners[svc.container_name] = name
        return issues

    def resolve(self, source: str) -> str:
        """
        Resolves a bind-mount source against the base directory.
        """
        return os.path.abspath(os.path.join(self.base_dir, os.path.expanduser(source)))

    def dockerfile_path(self, context: str, dockerfile: Optional[str] = None) -> str:
        return os.path.join(self.resolve(context), dockerfile or "Dockerfile")
