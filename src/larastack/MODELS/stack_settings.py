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
Expected shape of the Laravel / nginx / PostgreSQL stack.

The defaults describe the artifacts shipped under ``deploy/``. Renderers use
them as input and the stack contract checks parsed files against them.
"""
from typing import Dict, List
from pydantic import BaseModel, Field


class DatabaseSettings(BaseModel):
    """Credentials shared by the postgres image and the application."""

    name: str = "my_laravel_db"
    user: str = "myuser"
    password: str = "mypassword"
    connection: str = "pgsql"
    port: int = 5432
    host_port: int = 5432
    data_dir: str = "/var/lib/postgresql/data"
    volume: str = "pgdata"

    def postgres_environment(self) -> Dict[str, str]:
        return {
            "POSTGRES_DB": self.name,
            "POSTGRES_USER": self.user,
            "POSTGRES_PASSWORD": self.password,
        }


class StackSettings(BaseModel):
    """
    Names, images, ports and paths of the three services.
    """

    project: str = "laravel"

    app_service: str = "app"
    proxy_service: str = "nginx"
    db_service: str = "postgres"

    proxy_image: str = "nginx:alpine"
    db_image: str = "postgres:15"
    app_build: str = "."

    proxy_host_port: int = 81
    proxy_port: int = 80
    fastcgi_port: int = 9000

    source_dir: str = "."
    app_root: str = "/var/www"
    nginx_conf_source: str = "./nginx/default.conf"
    nginx_conf_target: str = "/etc/nginx/conf.d/default.conf"
    server_name: str = "localhost"
    index_files: List[str] = ["index.php", "index.html"]
    entry_script: str = "/index.php"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @property
    def document_root(self) -> str:
        return f"{self.app_root}/public"

    @property
    def fastcgi_pass(self) -> str:
        return f"{self.app_service}:{self.fastcgi_port}"

    @property
    def service_names(self) -> List[str]:
        return [self.app_service, self.proxy_service, self.db_service]

    def container_name(self, service: str) -> str:
        return f"{self.project}_{service}"

    def application_environment(self) -> Dict[str, str]:
        """
        The DB_* variables the application needs inside the ``app`` container.
        DB_HOST is the database service name, never a loopback address.
        """
        db = self.database
        return {
            "DB_CONNECTION": db.connection,
            "DB_HOST": self.db_service,
            "DB_PORT": str(db.port),
            "DB_DATABASE": db.name,
            "DB_USERNAME": db.user,
            "DB_PASSWORD": db.password,
        }

    def build_command(self) -> List[str]:
        """Builds the app image and starts all services in the background."""
        return ["docker", "compose", "up", "-d", "--build"]

    def migrate_command(self) -> List[str]:
        """Runs the migrations once inside the running app container."""
        return ["docker", "compose", "exec", self.app_service, "php", "artisan", "migrate"]
