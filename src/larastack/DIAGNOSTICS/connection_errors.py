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
Recognizes database-client connection errors and explains how to fix them.

Covers the messages surfaced through PHP's PDO (and therefore Laravel) by
libpq and the MySQL client:

    SQLSTATE[08006] [7] connection to server at "127.0.0.1", port 5432 failed: Connection refused
    SQLSTATE[08006] [7] could not connect to server: Connection refused
            Is the server running on host "127.0.0.1" and accepting
            TCP/IP connections on port 5432?
    SQLSTATE[HY000] [2002] Connection refused
    SQLSTATE[08006] [7] could not translate host name "postgres" to address: ...
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..VALIDATORS.env_contract import is_loopback


class Symptom(str, Enum):
    """Kinds of connection failure."""

    CONNECTION_REFUSED = "connection-refused"
    UNKNOWN_HOST = "unknown-host"
    UNRECOGNIZED = "unrecognized"


@dataclass
class Diagnosis:
    """What a connection error means and the one-line fix."""

    symptom: Symptom
    host: Optional[str] = None
    port: Optional[int] = None
    sqlstate: Optional[str] = None
    loopback: bool = False
    remediation: Optional[str] = None

    @property
    def recognized(self) -> bool:
        return self.symptom != Symptom.UNRECOGNIZED


SQLSTATE = re.compile(r"SQLSTATE\[(\w+)\]")
# libpq >= 14
MODERN_REFUSED = re.compile(
    r'connection to server at "(?P<host>[^"]+)"(?: \([^)]*\))?, port (?P<port>\d+) failed:\s*Connection refused',
    re.IGNORECASE,
)
# libpq < 14
LEGACY_REFUSED = re.compile(
    r"could not connect to server:\s*Connection refused"
    r'(?:.*?on host "(?P<host>[^"]+)")?(?:.*?on port (?P<port>\d+))?',
    re.IGNORECASE | re.DOTALL,
)
# PDO MySQL and generic errno 111 messages
GENERIC_REFUSED = re.compile(r"(\[2002\]\s*)?Connection refused", re.IGNORECASE)
UNKNOWN_HOST = (
    re.compile(r'could not translate host name "(?P<host>[^"]+)" to address', re.IGNORECASE),
    re.compile(r"getaddrinfo for (?P<host>[\w.-]+) failed", re.IGNORECASE),
)


class ConnectionErrorDiagnoser:
    """
    Classifies an error message from a database client.
    """

    def __init__(self, db_service: str = "postgres", app_service: str = "app"):
        """
        :param db_service: Service name the application should use as DB_HOST.
        :param app_service: Service in which artisan commands must run.
        """
        self.db_service = db_service
        self.app_service = app_service

    def diagnose(self, message: str) -> Diagnosis:
        state = SQLSTATE.search(message)
        sqlstate = state.group(1) if state else None

        for pattern in UNKNOWN_HOST:
            host_match = pattern.search(message)
            if host_match is None:
                continue
            host = host_match.group("host")
            return Diagnosis(
                symptom=Symptom.UNKNOWN_HOST,
                host=host,
                sqlstate=sqlstate,
                remediation=(
                    f"'{host}' only resolves inside the compose network; run the command in the "
                    f"container: docker compose exec {self.app_service} php artisan migrate"
                ),
            )

        match = MODERN_REFUSED.search(message) or LEGACY_REFUSED.search(message)
        if match is None and not GENERIC_REFUSED.search(message):
            return Diagnosis(symptom=Symptom.UNRECOGNIZED, sqlstate=sqlstate)

        host = match.group("host") if match else None
        port = match.group("port") if match else None
        loopback = host is not None and is_loopback(host)
        if loopback or host is None:
            remediation = (
                f"set DB_HOST={self.db_service} in the application's .env; inside a container "
                f"127.0.0.1 is the container itself"
            )
        else:
            remediation = (
                f"the database at {host} is not accepting connections yet; check "
                f"'docker compose ps {self.db_service}' and retry once it is up"
            )
        return Diagnosis(
            symptom=Symptom.CONNECTION_REFUSED,
            host=host,
            port=int(port) if port else None,
            sqlstate=sqlstate,
            loopback=loopback,
            remediation=remediation,
        )


ENV_LINE = re.compile(r"^(?P<prefix>\s*(?:export\s+)?)(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=.*$")


def fix_env_text(content: str, db_host: str = "postgres") -> str:
    """
    Rewrites the DB_HOST line of a .env file; every other line is kept as is.
    DB_HOST is appended when the file has none.
    """
    lines = content.splitlines(keepends=True)
    replaced = False
    for i, line in enumerate(lines):
        match = ENV_LINE.match(line.rstrip("\r\n"))
        if match and match.group("key") == "DB_HOST":
            ending = line[len(line.rstrip("\r\n")):]
            lines[i] = f"{match.group('prefix')}DB_HOST={db_host}{ending}"
            replaced = True
    if not replaced:
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.append(f"DB_HOST={db_host}\n")
    return "".join(lines)
