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
Parsers for Docker Compose YAML files.
"""
import yaml
from typing import Dict, Any, List, Optional
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition, VolumeMount, PortMapping, MountKind
from ..UTILS.string_interpolation import EnvironmentInterpolator
import os


class ComposeError(ValueError):
    """
    Raised when a compose file cannot be read as a service descriptor set.
    """


class ComposeParser:
    """
    Parser for docker-compose.yml files.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: A dictionary of environment variables for interpolation.
        """
        self.context = dict(os.environ) if context is None else context
        self.missing: List[str] = []

    def parse(self, compose_path: str) -> OrchestrationConfig:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: Parsed configuration.
        """
        with open(compose_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> OrchestrationConfig:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :return: Parsed configuration.
        :raises ComposeError: On invalid YAML or an unexpected document shape.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ComposeError(f"Invalid YAML: {e}") from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ComposeError("Top level of a compose file must be a mapping")

        # Interpolate values after parsing, so substituted text cannot change the YAML structure
        self.missing = []
        try:
            data = self._interpolate(data)
        except KeyError as e:
            raise ComposeError(f"Interpolation failed: {e.args[0]}") from e
        for name in dict.fromkeys(self.missing):
            print(f"Warning: variable {name} is not set. Defaulting to a blank string.")

        services_spec = data.get('services') or {}
        if not isinstance(services_spec, dict):
            raise ComposeError("'services' must be a mapping of service names to definitions")

        services = {}
        for name, spec in services_spec.items():
            if spec is None:
                spec = {}
            if not isinstance(spec, dict):
                raise ComposeError(f"Service {name} must be a mapping")
            services[str(name)] = self._parse_service(str(name), spec)

        return OrchestrationConfig(
            services=services,
            networks=self._keys(data.get('networks')),
            volumes=self._keys(data.get('volumes'))
        )

    def _interpolate(self, value: Any) -> Any:
        """
        Recursively interpolates every string scalar of the document.
        """
        if isinstance(value, str):
            return EnvironmentInterpolator.interpolate(value, self.context, self.missing)
        if isinstance(value, dict):
            return {k: self._interpolate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._interpolate(v) for v in value]
        return value

    def _parse_service(self, name: str, spec: Dict[str, Any]) -> ServiceDefinition:
        """
        Parses a single service definition from a compose file.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :return: A ServiceDefinition instance.
        """
        build = spec.get('build')
        if isinstance(build, dict):
            build_context = build.get('context', '.')
            dockerfile = build.get('dockerfile')
        else:
            build_context = build
            dockerfile = None

        depends_on = spec.get('depends_on') or []
        conditions = {}
        if isinstance(depends_on, dict):
            for dep, opts in depends_on.items():
                if isinstance(opts, dict) and 'condition' in opts:
                    conditions[dep] = opts['condition']
            depends_on = list(depends_on.keys())

        return ServiceDefinition(
            name=name,
            image_name=spec.get('image') or '',
            build_context=build_context,
            dockerfile_path=dockerfile,
            container_name=spec.get('container_name'),
            ports=[self._parse_port(name, p) for p in spec.get('ports') or []],
            networks=self._keys(spec.get('networks')),
            volumes=[self._parse_volume(name, v) for v in spec.get('volumes') or []],
            environment=self._parse_environment(spec.get('environment')),
            environment_files=self._to_list(spec.get('env_file')),
            depends_on=[str(d) for d in depends_on],
            dependency_conditions=conditions,
            restart=str(spec.get('restart', 'no'))
        )

    def _parse_port(self, service: str, port: Any) -> PortMapping:
        """
        Parses ``"81:80"``, ``"127.0.0.1:81:80"``, ``"5432/udp"`` or the long mapping form.
        """
        if isinstance(port, dict):
            if 'target' not in port:
                raise ComposeError(f"Service {service}: long-form port needs a 'target'")
            published = port.get('published')
            return PortMapping(
                container=int(port['target']),
                host=int(published) if published not in (None, '') else None,
                host_ip=port.get('host_ip'),
                protocol=port.get('protocol', 'tcp')
            )

        text = str(port)
        protocol = 'tcp'
        if '/' in text:
            text, protocol = text.rsplit('/', 1)
        host_ip = None
        if text.startswith('['):
            # IPv6 host address: [::1]:81:80
            end = text.index(']')
            host_ip, text = text[1:end], text[end + 2:]
        parts = text.split(':')
        if len(parts) == 3:
            host_ip, host, container = parts
        elif len(parts) == 2:
            host, container = parts
        elif len(parts) == 1:
            host, container = '', parts[0]
        else:
            raise ComposeError(f"Service {service}: cannot parse port mapping {port!r}")
        try:
            return PortMapping(
                container=int(container),
                host=int(host) if host else None,
                host_ip=host_ip or None,
                protocol=protocol
            )
        except ValueError as e:
            raise ComposeError(f"Service {service}: cannot parse port mapping {port!r}") from e

    def _parse_volume(self, service: str, volume: Any) -> VolumeMount:
        """
        Parses ``"src:target[:mode]"``, a bare anonymous ``"target"`` or the long mapping form.
        """
        if isinstance(volume, dict):
            if 'target' not in volume:
                raise ComposeError(f"Service {service}: long-form volume needs a 'target'")
            source = volume.get('source')
            kind = volume.get('type')
            return VolumeMount(
                source=source,
                target=volume['target'],
                read_only=bool(volume.get('read_only', False)),
                kind=MountKind(kind) if kind in ('bind', 'volume') else VolumeMount.classify(source)
            )

        parts = str(volume).split(':')
        if len(parts) == 1:
            return VolumeMount(target=parts[0], kind=MountKind.ANONYMOUS)
        if len(parts) in (2, 3):
            source, target = parts[0], parts[1]
            modes = parts[2].split(',') if len(parts) == 3 else []
            return VolumeMount(
                source=source,
                target=target,
                read_only='ro' in modes,
                kind=VolumeMount.classify(source)
            )
        raise ComposeError(f"Service {service}: cannot parse volume {volume!r}")

    def _parse_environment(self, env_spec: Any) -> Dict[str, str]:
        environment = {}
        if isinstance(env_spec, list):
            for e in env_spec:
                key, sep, value = str(e).partition('=')
                environment[key] = value if sep else ''
        elif isinstance(env_spec, dict):
            for key, value in env_spec.items():
                environment[str(key)] = '' if value is None else self._scalar(value)
        return environment

    def _scalar(self, value: Any) -> str:
        """
        YAML turns ``true`` and ``5432`` into bool and int; compose reads them back as strings.
        """
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)

    def _keys(self, val: Any) -> List[str]:
        if not val:
            return []
        if isinstance(val, dict):
            return [str(k) for k in val.keys()]
        return [str(v) for v in val]

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        return list(val)
