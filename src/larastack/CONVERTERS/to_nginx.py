"""
Converters for generating the nginx server block that fronts PHP-FPM.
"""
import os
from typing import Optional
from jinja2 import Template
from ..MODELS.stack_settings import StackSettings

NGINX_TEMPLATE = r"""server {
    listen {{ s.proxy_port }};
    index {{ s.index_files | join(' ') }};
    server_name {{ s.server_name }};
    root {{ s.document_root }};

    location / {
        try_files $uri $uri/ {{ s.entry_script }}?$query_string;
    }

    location ~ \.php$ {
        fastcgi_split_path_info ^(.+\.php)(/.+)$;
        fastcgi_pass {{ s.fastcgi_pass }};
        fastcgi_index index.php;
        include fastcgi_params;
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        fastcgi_param PATH_INFO $fastcgi_path_info;
    }

    location ~ /\.ht {
        deny all;
    }
}
"""


class NginxConverter:
    """
    Renders nginx/default.conf from StackSettings.
    """

    def __init__(self, settings: Optional[StackSettings] = None):
        self.settings = settings or StackSettings()
        self.template = Template(NGINX_TEMPLATE, keep_trailing_newline=True)

    def render(self) -> str:
        return self.template.render(s=self.settings)

    def convert(self, output_dir: str = ".") -> str:
        """
        Writes nginx/default.conf below ``output_dir``.

        :return: The path of the written file.
        """
        conf_dir = os.path.join(output_dir, "nginx")
        os.makedirs(conf_dir, exist_ok=True)
        path = os.path.join(conf_dir, "default.conf")
        with open(path, "w") as f:
            f.write(self.render())

        print(f"Nginx configuration generated at {path}")
        return path
