"""
Converters for generating the application's .env database section.
"""
import os
import re
from typing import Optional
from jinja2 import Environment
from ..MODELS.stack_settings import StackSettings

DOTENV_TEMPLATE = """APP_NAME=Laravel
APP_ENV=local
APP_KEY=
APP_DEBUG=true
APP_URL=http://localhost:{{ s.proxy_host_port }}

# Inside the app container the database is reached by its service name,
# not 127.0.0.1.
{% for key, value in env.items() %}
{{ key }}={{ value | dotenv_value }}
{% endfor %}
"""

PLAIN_VALUE = re.compile(r"[\w./@%+,:-]*")
DOTENV_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def dotenv_value(value) -> str:
    """
    Leaves simple values bare and double-quotes the rest, escaping backslashes,
    quotes and line breaks the way dotenv readers decode them.
    """
    text = str(value)
    if PLAIN_VALUE.fullmatch(text):
        return text
    return '"' + "".join(DOTENV_ESCAPES.get(c, c) for c in text) + '"'


class DotenvConverter:
    """
    Renders a .env file whose DB_* values match the compose descriptor.
    """

    def __init__(self, settings: Optional[StackSettings] = None):
        self.settings = settings or StackSettings()
        env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)
        env.filters["dotenv_value"] = dotenv_value
        self.template = env.from_string(DOTENV_TEMPLATE)

    def render(self) -> str:
        return self.template.render(s=self.settings, env=self.settings.application_environment())

    def convert(self, output_dir: str = ".", filename: str = ".env.example") -> str:
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, filename)
        with open(path, "w") as f:
            f.write(self.render())

        print(f"Environment file generated at {path}")
        return path
