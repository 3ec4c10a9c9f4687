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
Parser for nginx configuration files.

Reads either a bare ``server { ... }`` snippet (as dropped into
``/etc/nginx/conf.d``) or a full ``http { server { ... } }`` file and
extracts the first server block into a ProxyConfig.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Iterator, Tuple

from ..MODELS.proxy_config import ProxyConfig, LocationBlock, LocationModifier


class NginxConfigError(ValueError):
    """Raised on malformed nginx syntax or a file without a server block."""


@dataclass
class Directive:
    """A single directive; ``block`` is None for simple ``name args;`` directives."""

    name: str
    args: List[str] = field(default_factory=list)
    block: Optional[List["Directive"]] = None
    line: int = 0

    def find(self, name: str) -> List["Directive"]:
        return [d for d in self.block or [] if d.name == name]

    def first(self, name: str) -> Optional["Directive"]:
        found = self.find(name)
        return found[0] if found else None


class NginxParser:
    """
    Tokenizes nginx syntax and builds a directive tree.
    """

    SPECIAL = "{};"
    # nginx unescapes only these inside quotes; other backslashes are kept
    ESCAPES = {"\"": "\"", "'": "'", "\\": "\\", "t": "\t", "r": "\r", "n": "\n"}

    def parse(self, conf_path: str) -> ProxyConfig:
        """
        Parses an nginx configuration file from a path.

        :param conf_path: Path to the configuration file.
        :return: The first server block as a ProxyConfig.
        """
        with open(conf_path, "r") as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> ProxyConfig:
        """
        Parses nginx configuration text into a ProxyConfig.

        :raises NginxConfigError: On syntax errors or when no server block exists.
        """
        server = self._find_server(self.parse_tree(content))
        if server is None:
            raise NginxConfigError("No server block found")
        return self._build_proxy_config(server)

    def parse_tree(self, content: str) -> List[Directive]:
        """
        Parses nginx configuration text into a list of top-level directives.
        """
        tokens = list(self._tokenize(content))
        directives, _ = self._parse_block(tokens, 0, nested=False)
        return directives

    def _tokenize(self, content: str) -> Iterator[Tuple[str, int, bool]]:
        """
        Yields ``(token, line, quoted)`` tuples.
        """
        i = 0
        line = 1
        length = len(content)
        while i < length:
            ch = content[i]
            if ch == "\n":
                line += 1
                i += 1
            elif ch.isspace():
                i += 1
            elif ch == "#":
                while i < length and content[i] != "\n":
                    i += 1
            elif ch in self.SPECIAL:
                yield ch, line, False
                i += 1
            elif ch in "\"'":
                start_line = line
                i += 1
                buf = []
                while i < length and content[i] != ch:
                    if content[i] == "\\" and i + 1 < length and content[i + 1] in self.ESCAPES:
                        buf.append(self.ESCAPES[content[i + 1]])
                        i += 2
                        continue
                    if content[i] == "\n":
                        line += 1
                    buf.append(content[i])
                    i += 1
                if i >= length:
                    raise NginxConfigError(f"Unterminated quoted string starting on line {start_line}")
                i += 1
                yield "".join(buf), start_line, True
            else:
                start = i
                while i < length and not content[i].isspace() and content[i] not in self.SPECIAL:
                    i += 1
                yield content[start:i], line, False

    def _parse_block(self, tokens, pos: int, nested: bool) -> Tuple[List[Directive], int]:
        directives = []
        while pos < len(tokens):
            token, line, quoted = tokens[pos]
            if token == "}" and not quoted:
                if not nested:
                    raise NginxConfigError(f"Unexpected '}}' on line {line}")
                return directives, pos + 1
            if token in (";", "{") and not quoted:
                raise NginxConfigError(f"Unexpected '{token}' on line {line}")

            directive = Directive(name=token, line=line)
            pos += 1
            while True:
                if pos >= len(tokens):
                    raise NginxConfigError(f"Directive '{directive.name}' on line {line} is not terminated")
                token, _, quoted = tokens[pos]
                if token == ";" and not quoted:
                    pos += 1
                    break
                if token == "{" and not quoted:
                    directive.block, pos = self._parse_block(tokens, pos + 1, nested=True)
                    break
                if token == "}" and not quoted:
                    raise NginxConfigError(f"Directive '{directive.name}' on line {line} is missing ';'")
                directive.args.append(token)
                pos += 1
            directives.append(directive)

        if nested:
            raise NginxConfigError("Unexpected end of file: missing '}'")
        return directives, pos

    def _find_server(self, directives: List[Directive]) -> Optional[Directive]:
        for directive in directives:
            if directive.name == "server" and directive.block is not None:
                return directive
            if directive.name == "http" and directive.block is not None:
                found = self._find_server(directive.block)
                if found is not None:
                    return found
        return None

    def _build_proxy_config(self, server: Directive) -> ProxyConfig:
        config = ProxyConfig(
            listen=[" ".join(d.args) for d in server.find("listen")],
            server_names=[name for d in server.find("server_name") for name in d.args],
        )
        root = server.first("root")
        if root is not None and root.args:
            config.root = root.args[0]
        index = server.first("index")
        if index is not None:
            config.index = list(index.args)
        config.locations = [self._build_location(d) for d in server.find("location")]
        return config

    def _build_location(self, directive: Directive) -> LocationBlock:
        args = directive.args
        if len(args) == 1:
            modifier, pattern = LocationModifier.PREFIX, args[0]
        elif len(args) == 2:
            try:
                modifier = LocationModifier(args[0])
            except ValueError as e:
                raise NginxConfigError(f"Invalid location modifier '{args[0]}' on line {directive.line}") from e
            pattern = args[1]
        else:
            raise NginxConfigError(f"Invalid location on line {directive.line}")
        if directive.block is None:
            raise NginxConfigError(f"Location on line {directive.line} has no block")

        location = LocationBlock(modifier=modifier, pattern=pattern)
        for d in directive.block:
            if d.name == "try_files":
                location.try_files = list(d.args)
            elif d.name == "fastcgi_pass" and d.args:
                location.fastcgi_pass = d.args[0]
            elif d.name == "fastcgi_index" and d.args:
                location.fastcgi_index = d.args[0]
            elif d.name == "fastcgi_split_path_info" and d.args:
                location.fastcgi_split_path_info = d.args[0]
            elif d.name == "fastcgi_param" and len(d.args) >= 2:
                location.fastcgi_params[d.args[0]] = d.args[1]
            elif d.name == "include" and d.args:
                location.includes.append(d.args[0])
            elif d.name == "deny":
                location.deny.extend(d.args)
            elif d.name == "allow":
                location.allow.extend(d.args)
            elif d.name == "root" and d.args:
                location.root = d.args[0]

        if location.is_regex:
            flags = re.IGNORECASE if modifier == LocationModifier.REGEX_CASELESS else 0
            self._compile(location.pattern, flags, directive.line)
        if location.fastcgi_split_path_info:
            self._compile(location.fastcgi_split_path_info, 0, directive.line)
        return location

    @staticmethod
    def _compile(pattern: str, flags: int, line: int):
        try:
            return re.compile(pattern, flags)
        except re.error as e:
            raise NginxConfigError(f"Invalid regular expression '{pattern}' in location on line {line}: {e}") from e
