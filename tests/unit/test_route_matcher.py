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
Unit tests for routing request paths through the nginx server block.
"""
import os
import pytest
from larastack.PARSERS.compose_parser import ComposeParser
from larastack.PARSERS.nginx_parser import NginxParser
from larastack.MODELS.proxy_config import RouteAction
from larastack.ROUTING.route_matcher import RouteMatcher, host_document_root

DEPLOY_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "deploy")


@pytest.fixture
def proxy():
    return NginxParser().parse(os.path.join(DEPLOY_DIR, "nginx", "default.conf"))


@pytest.fixture
def public(tmp_path):
    """A Laravel public/ directory."""
    root = tmp_path / "public"
    (root / "css").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "index.php").write_text("<?php\n")
    (root / "css" / "app.css").write_text("body {}\n")
    (root / ".htaccess").write_text("Options -MultiViews\n")
    return str(root)


class TestShippedRules:
    """The four outcomes of the shipped configuration."""

    def test_existing_file_is_served(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/css/app.css")
        assert decision.action == RouteAction.SERVE_STATIC
        assert decision.status == 200
        assert decision.file_path == "/var/www/public/css/app.css"
        assert decision.location == "location /"
        assert decision.backend is None

    def test_php_path_is_forwarded(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/info.php?x=1")
        assert decision.action == RouteAction.FORWARD
        assert decision.backend == "app:9000"
        assert decision.script_name == "/info.php"
        assert decision.location == r"location ~ \.php$"
        assert decision.fastcgi_params["SCRIPT_FILENAME"] == "/var/www/public/info.php"
        assert decision.fastcgi_params["QUERY_STRING"] == "x=1"
        assert decision.redirects == []

    def test_ht_path_is_denied(self, proxy, public):
        for path in ("/.htaccess", "/css/.htpasswd", "/%2Ehtaccess"):
            decision = RouteMatcher(proxy, public).match(path)
            assert decision.action == RouteAction.DENY, path
            assert decision.status == 403

    def test_everything_else_goes_to_entry_script(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/users/42?page=2&sort=name")
        assert decision.action == RouteAction.FORWARD
        assert decision.redirects == ["/index.php"]
        assert decision.uri == "/index.php"
        assert decision.query_string == "page=2&sort=name"
        assert decision.script_name == "/index.php"
        assert decision.fastcgi_params["SCRIPT_FILENAME"] == "/var/www/public/index.php"
        assert decision.fastcgi_params["REQUEST_URI"] == "/users/42?page=2&sort=name"

    def test_site_root_uses_index(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/")
        assert decision.action == RouteAction.FORWARD
        assert decision.script_name == "/index.php"

    def test_directory_without_index_is_forbidden(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/docs/")
        assert decision.action == RouteAction.RESPOND
        assert decision.status == 403

    def test_without_filesystem_everything_reaches_php(self, proxy):
        decision = RouteMatcher(proxy).match("/css/app.css")
        assert decision.action == RouteAction.FORWARD
        assert decision.script_name == "/index.php"

    def test_path_escaping_root(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/../etc/passwd")
        assert decision.action == RouteAction.RESPOND
        assert decision.status == 400

    def test_dot_segments_are_resolved(self, proxy, public):
        decision = RouteMatcher(proxy, public).match("/docs/../css/./app.css")
        assert decision.action == RouteAction.SERVE_STATIC
        assert decision.uri == "/css/app.css"


class TestLocationSelection:
    """nginx location precedence."""

    CONF = r"""
    server {
        root /srv/www;
        location / { try_files $uri =404; }
        location = /index.php { fastcgi_pass exact:9000; }
        location ^~ /static/ { }
        location ~ \.php(/|$) {
            fastcgi_split_path_info ^(.+\.php)(/.+)$;
            fastcgi_pass app:9000;
            fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
            fastcgi_param PATH_INFO $fastcgi_path_info;
        }
        location ~* \.JPG$ { deny all; }
        location /loop { try_files $uri /loop; }
    }
    """

    @pytest.fixture
    def matcher(self):
        return RouteMatcher(NginxParser().parse_from_string(self.CONF))

    def test_exact_beats_regex(self, matcher):
        assert matcher.match("/index.php").backend == "exact:9000"

    def test_preferred_prefix_beats_regex(self, matcher):
        assert str(matcher.select_location("/static/shell.php")) == "location ^~ /static/"

    def test_regex_beats_prefix(self, matcher):
        assert str(matcher.select_location("/a/b.php")) == r"location ~ \.php(/|$)"

    def test_caseless_regex(self, matcher):
        assert matcher.match("/photo.jpg").action == RouteAction.DENY

    def test_path_info_split(self, matcher):
        decision = matcher.match("/app.php/orders/7")
        assert decision.script_name == "/app.php"
        assert decision.fastcgi_params == {
            "SCRIPT_FILENAME": "/srv/www/app.php",
            "PATH_INFO": "/orders/7",
        }

    def test_try_files_status(self, matcher):
        decision = matcher.match("/missing.txt")
        assert decision.action == RouteAction.RESPOND
        assert decision.status == 404

    def test_redirect_cycle(self, matcher):
        decision = matcher.match("/loop/x")
        assert decision.action == RouteAction.RESPOND
        assert decision.status == 500
        assert len(decision.redirects) == RouteMatcher.MAX_REDIRECTS + 1


def test_host_document_root_follows_bind_mount(proxy):
    config = ComposeParser(context={}).parse(os.path.join(DEPLOY_DIR, "docker-compose.yml"))
    root = host_document_root(config, proxy, DEPLOY_DIR)
    assert root == os.path.abspath(os.path.join(DEPLOY_DIR, "public"))


def test_host_document_root_without_mount(proxy):
    config = ComposeParser(context={}).parse_from_string("services:\n  nginx:\n    image: nginx\n")
    assert host_document_root(config, proxy, ".") is None
