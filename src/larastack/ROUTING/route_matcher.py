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
Evaluates the routing rules of a parsed nginx server block for a request path.

Location selection follows nginx: an exact ``=`` match wins, then the
longest prefix is remembered, a ``^~`` prefix stops the search, otherwise
regex locations are tried in file order and the first hit wins, falling back
to the remembered prefix. ``try_files``, ``index`` and ``deny`` are then
applied, and internal redirects restart the selection.
"""
import os
import posixpath
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.proxy_config import (
    ProxyConfig,
    LocationBlock,
    LocationModifier,
    RouteAction,
    RouteDecision,
)

# Parameters that ``include fastcgi_params;`` brings in with the stock nginx file
DEFAULT_FASTCGI_PARAMS = {
    "QUERY_STRING": "$query_string",
    "REQUEST_URI": "$request_uri",
    "DOCUMENT_URI": "$document_uri",
    "DOCUMENT_ROOT": "$document_root",
    "SCRIPT_NAME": "$fastcgi_script_name",
}

VARIABLE = re.compile(r"\$\{(\w+)\}|\$(\w+)")


class RouteMatcher:
    """
    Routes request paths through a ProxyConfig.
    """

    MAX_REDIRECTS = 10

    def __init__(self, config: ProxyConfig, host_root: Optional[str] = None):
        """
        Initializes the matcher.

        :param config: The parsed server block.
        :param host_root: Host directory mounted at the server's ``root``. Without it
                          no file or directory is considered to exist.
        """
        self.config = config
        self.host_root = os.path.abspath(host_root) if host_root else None

    def match(self, request: str) -> RouteDecision:
        """
        Routes a single request.

        :param request: The request target, e.g. ``/users?page=2``.
        :return: Exactly one decision for the request.
        """
        raw_path, _, query = request.partition("?")
        uri = self.normalize(raw_path)
        if uri is None:
            return RouteDecision(action=RouteAction.RESPOND, uri=raw_path, query_string=query, status=400)

        redirects: List[str] = []
        while True:
            location = self.select_location(uri)
            outcome = self._apply(location, uri, query, request)
            if isinstance(outcome, RouteDecision):
                outcome.redirects = redirects
                return outcome

            uri, query = outcome
            redirects.append(uri)
            if len(redirects) > self.MAX_REDIRECTS:
                # nginx: "rewrite or internal redirection cycle"
                return RouteDecision(action=RouteAction.RESPOND, uri=uri, query_string=query,
                                     status=500, redirects=redirects)

    @staticmethod
    def normalize(path: str) -> Optional[str]:
        """
        Decodes and normalizes a request path. Returns None when the path is not
        absolute or climbs above the root.
        """
        if not path.startswith("/"):
            return None
        decoded = unquote(path)
        segments: List[str] = []
        for segment in decoded.split("/"):
            if segment in ("", "."):
                continue
            if segment == "..":
                if not segments:
                    return None
                segments.pop()
                continue
            segments.append(segment)
        uri = "/" + "/".join(segments)
        trailing = decoded.endswith("/") or decoded.split("/")[-1] in (".", "..")
        if segments and trailing:
            uri += "/"
        return uri

    def select_location(self, uri: str) -> Optional[LocationBlock]:
        """
        Chooses the location block nginx would use for ``uri``.
        """
        best_prefix: Optional[LocationBlock] = None
        for location in self.config.locations:
            if location.pattern.startswith("@"):
                continue
            if location.modifier == LocationModifier.EXACT:
                if location.pattern == uri:
                    return location
            elif not location.is_regex and uri.startswith(location.pattern):
                if best_prefix is None or len(location.pattern) > len(best_prefix.pattern):
                    best_prefix = location

        if best_prefix is not None and best_prefix.modifier == LocationModifier.PREFERRED_PREFIX:
            return best_prefix

        for location in self.config.locations:
            if not location.is_regex:
                continue
            flags = re.IGNORECASE if location.modifier == LocationModifier.REGEX_CASELESS else 0
            if re.search(location.pattern, uri, flags):
                return location

        return best_prefix

    def _apply(self, location: Optional[LocationBlock], uri: str, query: str,
               request: str):
        """
        Applies a location to ``uri``. Returns a RouteDecision, or a ``(uri, query)``
        tuple for an internal redirect.
        """
        label = str(location) if location else None

        if location is not None and location.denies_all and not location.allow:
            return RouteDecision(action=RouteAction.DENY, uri=uri, query_string=query,
                                 location=label, status=403)

        if location is not None and location.try_files:
            variables = self._variables(location, uri, query, request)
            for item in location.try_files[:-1]:
                candidate = re.sub(r"/{2,}", "/", self._expand(item, variables))
                if candidate.endswith("/"):
                    if self._is_dir(candidate):
                        return self._serve(location, candidate, query, request)
                elif self._is_file(candidate):
                    return self._serve(location, candidate, query, request)

            fallback = self._expand(location.try_files[-1], variables)
            if fallback.startswith("=") and fallback[1:].isdigit():
                return RouteDecision(action=RouteAction.RESPOND, uri=uri, query_string=query,
                                     location=label, status=int(fallback[1:]))
            target, _, new_query = fallback.partition("?")
            return target, new_query

        return self._serve(location, uri, query, request)

    def _serve(self, location: Optional[LocationBlock], uri: str, query: str, request: str):
        """
        Content phase: FastCGI forwarding, directory index or a static file.
        """
        label = str(location) if location else None

        if location is not None and location.fastcgi_pass:
            return self._forward(location, uri, query, request)

        if uri.endswith("/"):
            for name in self.config.index:
                if self._is_file(uri + name):
                    return uri + name, query
            # No index file and no autoindex
            return RouteDecision(action=RouteAction.RESPOND, uri=uri, query_string=query,
                                 location=label, status=403)

        if self._is_file(uri):
            return RouteDecision(
                action=RouteAction.SERVE_STATIC,
                uri=uri,
                query_string=query,
                location=label,
                file_path=self._document_root(location).rstrip("/") + uri,
            )
        return RouteDecision(action=RouteAction.RESPOND, uri=uri, query_string=query,
                             location=label, status=404)

    def _forward(self, location: LocationBlock, uri: str, query: str, request: str) -> RouteDecision:
        script_name, path_info = self._split_script(location, uri)
        variables = self._variables(location, uri, query, request)
        variables["fastcgi_script_name"] = script_name
        variables["fastcgi_path_info"] = path_info

        params: Dict[str, str] = {}
        if any(os.path.basename(inc) == "fastcgi_params" for inc in location.includes):
            params.update(DEFAULT_FASTCGI_PARAMS)
        params.update(location.fastcgi_params)
        params = {name: self._expand(value, variables) for name, value in params.items()}

        backend = location.backend
        return RouteDecision(
            action=RouteAction.FORWARD,
            uri=uri,
            query_string=query,
            location=str(location),
            backend_host=backend[0] if backend else None,
            backend_port=backend[1] if backend else None,
            script_name=script_name,
            fastcgi_params=params,
        )

    def _split_script(self, location: LocationBlock, uri: str) -> Tuple[str, str]:
        if location.fastcgi_split_path_info:
            match = re.search(location.fastcgi_split_path_info, uri)
            if match and match.lastindex and match.lastindex >= 2:
                return match.group(1), match.group(2)
        if uri.endswith("/") and location.fastcgi_index:
            return uri + location.fastcgi_index, ""
        return uri, ""

    def _variables(self, location: Optional[LocationBlock], uri: str, query: str,
                   request: str) -> Dict[str, str]:
        return {
            "uri": uri,
            "document_uri": uri,
            "request_uri": request,
            "query_string": query,
            "args": query,
            "is_args": "?" if query else "",
            "document_root": self._document_root(location),
            "fastcgi_script_name": uri,
            "fastcgi_path_info": "",
        }

    @staticmethod
    def _expand(value: str, variables: Dict[str, str]) -> str:
        """
        Substitutes known ``$variables``; unknown ones are kept verbatim.
        """
        def replace(match):
            name = match.group(1) or match.group(2)
            return variables.get(name, match.group(0))
        return VARIABLE.sub(replace, value)

    def _document_root(self, location: Optional[LocationBlock]) -> str:
        if location is not None and location.root:
            return location.root
        return self.config.root

    def _host_path(self, uri: str) -> Optional[str]:
        if self.host_root is None:
            return None
        path = os.path.abspath(os.path.join(self.host_root, uri.lstrip("/")))
        if path != self.host_root and not path.startswith(self.host_root + os.sep):
            return None
        return path

    def _is_file(self, uri: str) -> bool:
        path = self._host_path(uri)
        return path is not None and os.path.isfile(path)

    def _is_dir(self, uri: str) -> bool:
        path = self._host_path(uri)
        return path is not None and os.path.isdir(path)


def host_document_root(config: OrchestrationConfig, proxy: ProxyConfig, base_dir: str = ".",
                       proxy_service: str = "nginx") -> Optional[str]:
    """
    Maps the server's ``root`` back to a host directory through the proxy
    service's bind mounts (``.:/var/www`` makes ``/var/www/public`` -> ``./public``).
    The most specific mount wins.
    """
    service = config.get(proxy_service)
    if service is None:
        return None
    root = posixpath.normpath(proxy.root)
    best = None
    for mount in service.bind_mounts:
        target = posixpath.normpath(mount.target)
        if root == target:
            rest = ""
        elif root.startswith(target.rstrip("/") + "/"):
            rest = root[len(target.rstrip("/")) + 1:]
        else:
            continue
        if best is None or len(target) > len(best[0]):
            best = (target, mount.source, rest)
    if best is None:
        return None
    source = os.path.join(base_dir, os.path.expanduser(best[1]))
    return os.path.abspath(os.path.join(source, best[2]))
