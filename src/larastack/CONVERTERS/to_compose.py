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
Converters for generating the docker-compose.yml of the stack.
"""
import json
import os
import re
from typing import Optional
import yaml
from jinja2 import Environment
from ..MODELS.stack_settings import StackSettings

COMPOSE_TEMPLATE = """services:
  {{ s.app_service }}:
    build: {{ s.app_build }}
    container_name: {{ s.container_name(s.app_service) }}
    volumes:
      - {{ s.source_dir }}:{{ s.app_root }}
    depends_on:
      - {{ s.db_service }}

  {{ s.proxy_service }}:
    image: {{ s.proxy_image }}
    container_name: {{ s.container_name(s.proxy_service) }}
    ports:
      - "{{ s.proxy_host_port }}:{{ s.proxy_port }}"
    volumes:
      - {{ s.source_dir }}:{{ s.app_root }}
      - {{ s.nginx_conf_source }}:{{ s.nginx_conf_target }}
    depends_on:
      - {{ s.app_service }}

  {{ s.db_service }}:
    image: {{ s.db_image }}
    container_name: {{ s.container_name(s.db_service) }}
    environment:
{% for key, value in db.postgres_environment().items() %}
      {{ key }}: {{ value | compose_scalar }}
{% endfor %}
    ports:
      - "{{ db.host_port }}:{{ db.port }}"
    volumes:
      - {{ db.volume }}:{{ db.data_dir }}

volumes:
  {{ db.volume }}:
"""

# characters YAML rejects or folds as line breaks inside a double-quoted scalar
YAML_UNSAFE = re.compile("[\x7f-\x9f\u2028\u2029\ufeff]")


def compose_scalar(value) -> str:
    """
    Writes a string as a YAML scalar that compose reads back unchanged: ``$``
    is doubled so interpolation leaves it alone, and the value is double-quoted
    unless the plain form already parses to the same string.
    """
    text = str(value).replace("$", "$$")
    try:
        plain = yaml.safe_load(text) == text and text.isprintable()
    except yaml.YAMLError:
        plain = False
    if plain:
        return text
    quoted = json.dumps(text, ensure_ascii=False)
    return YAML_UNSAFE.sub(lambda m: "\\u%04x" % ord(m.group()), quoted)


class ComposeConverter:
    """
    Renders the three-service compose descriptor from StackSettings.
    """

    def __init__(self, settings: Optional[StackSettings] = None):
        """
        Initializes the compose converter.

        :param settings: Names, images, ports and credentials of the stack.
        """
        self.settings = settings or StackSettings()
        env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)
        env.filters["compose_scalar"] = compose_scalar
        self.template = env.from_string(COMPOSE_TEMPLATE)

    def render(self) -> str:
        return self.template.render(s=self.settings, db=self.settings.database)

    def convert(self, output_dir: str = ".") -> str:
        """
        Writes docker-compose.yml.

        :param output_dir: The directory where the file will be created.
        :return: The path of the written file.
        """
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, "docker-compose.yml")
        with open(path, "w") as f:
            f.write(self.render())

        print(f"Compose file generated at {path}")
        return path
