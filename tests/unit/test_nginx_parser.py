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
Unit tests for the nginx configuration parser.
"""
import os
import pytest
from larastack.PARSERS.nginx_parser import NginxParser, NginxConfigError
from larastack.MODELS.proxy_config import LocationModifier, RouteAction
from larastack.ROUTING.route_matcher import RouteMatcher

DEPLOY_CONF = os.path.join(os.path.dirname(__file__), "..", "..", "deploy", "nginx", "default.conf")


class TestShippedServerBlock:
    """Tests against deploy/nginx/default.conf."""

    @pytest.fixture
    def proxy(self):
        return NginxParser().parse(DEPLOY_CONF)

    def test_server_directives(self, proxy):
        assert proxy.listen_ports == [80]
        assert proxy.server_names == ["localhost"]
        assert proxy.root == "/var/www/public"
        assert proxy.index == ["index.php", "index.html"]
        assert len(proxy.locations) == 3

    def test_front_controller_location(self, proxy):
        location = proxy.locations[0]
        assert location.modifier == LocationModifier.PREFIX
        assert location.pattern == "/"
        assert location.try_files == ["$uri", "$uri/", "/index.php?$query_string"]

    def test_php_location_forwards_to_app(self, proxy):
        location = proxy.php_location()
        assert location is proxy.locations[1]
        assert location.modifier == LocationModifier.REGEX
        assert location.pattern == r"\.php$"
        assert location.fastcgi_pass == "app:9000"
        assert location.backend == ("app", 9000)
        assert location.fastcgi_split_path_info == r"^(.+\.php)(/.+)$"
        assert location.fastcgi_params["SCRIPT_FILENAME"] == "$document_root$fastcgi_script_name"
        assert location.includes == ["fastcgi_params"]

    def test_ht_files_are_denied(self, proxy):
        location = proxy.locations[2]
        assert location.pattern == r"/\.ht"
        assert location.denies_all


class TestSyntax:
    """Tests for tokenizing and error reporting."""

    def test_http_wrapper_and_comments(self):
        content = """
        # main config
        events {}
        http {
            server {
                listen 127.0.0.1:8080 default_server; # inline comment
                location = /health { return 200; }
                location ^~ /static/ { root /srv; }
            }
        }
        """
        proxy = NginxParser().parse_from_string(content)
        assert proxy.listen_ports == [8080]
        assert proxy.locations[0].modifier == LocationModifier.EXACT
        assert proxy.locations[1].modifier == LocationModifier.PREFERRED_PREFIX
        assert proxy.locations[1].root == "/srv"

    def test_quoted_arguments(self):
        tree = NginxParser().parse_tree('add_header X-Note "a; b {c}";\nlog_format main \'$remote_addr\';')
        assert tree[0].args == ["X-Note", "a; b {c}"]
        assert tree[1].args == ["main", "$remote_addr"]

    def test_backslashes_in_quoted_arguments(self):
        tree = NginxParser().parse_tree(r'add_header X "say \"hi\" \\ \d";')
        assert tree[0].args == ["X", r'say "hi" \ \d']

    def test_quoted_regex_keeps_its_escapes(self):
        proxy = NginxParser().parse_from_string(
            r'server { location ~ "\.php$" { fastcgi_pass app:9000; } }'
        )
        assert proxy.locations[0].pattern == r"\.php$"
        assert RouteMatcher(proxy).match("/index_php").action != RouteAction.FORWARD
        assert RouteMatcher(proxy).match("/index.php").action == RouteAction.FORWARD

    def test_unix_socket_backend(self):
        proxy = NginxParser().parse_from_string(
            "server { location ~ \\.php$ { fastcgi_pass unix:/run/php/php-fpm.sock; } }"
        )
        assert proxy.php_location().backend is None

    @pytest.mark.parametrize("content", [
        "server { listen 80 }",
        "server { listen 80;",
        "server { listen 80; } }",
        "server { location / ; }",
        "server { location ! /x { } }",
        'server { root "/var/www; }',
        "events { worker_connections 1024; }",
        "server { location ~ ^(/a { } }",
        "server { location ~* \"[z-a]\" { } }",
        "server { location ~ \\.php$ { fastcgi_split_path_info (.+; } }",
    ])
    def test_errors(self, content):
        with pytest.raises(NginxConfigError):
            NginxParser().parse_from_string(content)
