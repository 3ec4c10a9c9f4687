"""
Command Line Interface for larastack.
"""
import os
import sys
import click
from ..PARSERS.compose_parser import ComposeParser
from ..PARSERS.env_parser import EnvParser
from ..PARSERS.nginx_parser import NginxParser
from ..MANAGERS.environment_manager import EnvironmentManager
from ..MODELS.stack_settings import StackSettings, DatabaseSettings
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..VALIDATORS.config_validator import ConfigValidator, Severity
from ..VALIDATORS.env_contract import EnvContract
from ..VALIDATORS.stack_contract import StackContract
from ..ROUTING.route_matcher import RouteMatcher, host_document_root
from ..DIAGNOSTICS.connection_errors import ConnectionErrorDiagnoser, fix_env_text
from ..CONVERTERS.to_compose import ComposeConverter
from ..CONVERTERS.to_nginx import NginxConverter
from ..CONVERTERS.to_dotenv import DotenvConverter
from ..UTILS.port_finder import wait_for_port

@click.group()
@click.option('--file', '-f', default='docker-compose.yml', help='Compose file path')
@click.option('--nginx', 'nginx_conf', default=None,
              help='nginx server block (default: nginx/default.conf next to the compose file)')
@click.option('--env', 'env_file', default=None,
              help='Application .env file (default: .env next to the compose file)')
@click.pass_context
def cli(ctx, file, nginx_conf, env_file):
    """
    larastack - checks and explains the app / nginx / postgres compose stack.

    Validates the deployment files, routes request paths through the nginx
    rules and diagnoses database connection errors.
    """
    ctx.ensure_object(dict)
    base_dir = os.path.dirname(os.path.abspath(file))
    ctx.obj['file'] = file
    ctx.obj['base_dir'] = base_dir
    ctx.obj['nginx'] = nginx_conf or os.path.join(base_dir, 'nginx', 'default.conf')
    ctx.obj['env'] = env_file or os.path.join(base_dir, '.env')

def _fail(ctx, message):
    click.echo(f"Error: {message}")
    ctx.exit(1)

def _load_config(ctx):
    """
    Parses the compose file once per invocation, interpolating with the project .env.
    """
    if 'config' not in ctx.obj:
        if not os.path.exists(ctx.obj['file']):
            _fail(ctx, f"{ctx.obj['file']} not found.")
        context = EnvironmentManager(ctx.obj['base_dir']).interpolation_context()
        try:
            ctx.obj['config'] = ComposeParser(context).parse(ctx.obj['file'])
        except ValueError as e:
            _fail(ctx, e)
    return ctx.obj['config']

def _load_proxy(ctx, required=True):
    path = ctx.obj['nginx']
    if not os.path.exists(path):
        if required:
            _fail(ctx, f"{path} not found.")
        return None
    try:
        return NginxParser().parse(path)
    except ValueError as e:
        _fail(ctx, e)

@cli.command()
@click.option('--strict', is_flag=True, help='Treat warnings as errors')
@click.pass_context
def validate(ctx, strict):
    """Validate the compose file, nginx config and .env."""
    config = _load_config(ctx)
    proxy = _load_proxy(ctx, required=False)

    issues = ConfigValidator(ctx.obj['base_dir']).check(config)
    issues.extend(StackContract(base_dir=ctx.obj['base_dir']).check(config, proxy))
    if os.path.exists(ctx.obj['env']):
        env = EnvParser.parse(ctx.obj['env'])
        issues.extend(EnvContract(config).check(env))

    for issue in issues:
        click.echo(str(issue))

    n_errors = sum(1 for i in issues if i.severity == Severity.ERROR)
    n_warnings = len(issues) - n_errors
    if not issues:
        click.echo("Configuration is valid.")
    else:
        click.echo(f"{n_errors} error(s), {n_warnings} warning(s)")
    if n_errors or (strict and n_warnings):
        ctx.exit(1)

@cli.command()
@click.argument('path')
@click.option('--root', default=None, help='Host directory of the document root')
@click.pass_context
def route(ctx, path, root):
    """Show how nginx handles a request PATH."""
    proxy = _load_proxy(ctx)
    if root is None and os.path.exists(ctx.obj['file']):
        root = host_document_root(_load_config(ctx), proxy, ctx.obj['base_dir'])

    decision = RouteMatcher(proxy, host_root=root).match(path)
    click.echo(f"action:   {decision.action.value}")
    click.echo(f"status:   {decision.status}")
    if decision.location:
        click.echo(f"location: {decision.location}")
    for hop in decision.redirects:
        click.echo(f"redirect: {hop}")
    if decision.file_path:
        click.echo(f"file:     {decision.file_path}")
    if decision.backend:
        click.echo(f"backend:  {decision.backend}")
        click.echo(f"script:   {decision.script_name}")
        for name, value in decision.fastcgi_params.items():
            click.echo(f"  {name:16} {value}")

@cli.command()
@click.option('--reverse', is_flag=True, help='Show the shutdown order instead')
@click.pass_context
def order(ctx, reverse):
    """Print the service start order."""
    config = _load_config(ctx)
    resolver = DependencyResolver()
    try:
        names = resolver.shutdown_order(config) if reverse else resolver.resolve_order(config)
    except ValueError as e:
        _fail(ctx, e)
    for i, name in enumerate(names, 1):
        click.echo(f"{i}. {name}")

@cli.command()
@click.argument('message')
@click.option('--db-service', default='postgres', help='Database service name')
def diagnose(message, db_service):
    """Explain a database connection error MESSAGE ('-' reads stdin)."""
    if message == '-':
        message = sys.stdin.read()
    diagnosis = ConnectionErrorDiagnoser(db_service=db_service).diagnose(message)
    if not diagnosis.recognized:
        click.echo("Unrecognized error message.")
        return
    click.echo(f"symptom:  {diagnosis.symptom.value}")
    if diagnosis.sqlstate:
        click.echo(f"sqlstate: {diagnosis.sqlstate}")
    if diagnosis.host:
        click.echo(f"host:     {diagnosis.host}{' (loopback)' if diagnosis.loopback else ''}")
    if diagnosis.port:
        click.echo(f"port:     {diagnosis.port}")
    click.echo(f"fix:      {diagnosis.remediation}")

@cli.command(name='fix-env')
@click.option('--host', default=None, help='Value for DB_HOST (default: the database service)')
@click.pass_context
def fix_env(ctx, host):
    """Point DB_HOST at the database service."""
    path = ctx.obj['env']
    if not os.path.exists(path):
        _fail(ctx, f"{path} not found.")
    if host is None:
        db = EnvContract(_load_config(ctx)).db
        host = db.name if db is not None else 'postgres'

    with open(path, 'r') as f:
        content = f.read()
    fixed = fix_env_text(content, host)
    if fixed == content:
        click.echo(f"{path} already uses DB_HOST={host}.")
        return
    with open(path, 'w') as f:
        f.write(fixed)
    click.echo(f"Set DB_HOST={host} in {path}.")

@cli.command()
@click.option('--out', '-o', default='.', help='Output directory')
@click.option('--project', default='laravel', help='Prefix of the container names')
@click.option('--http-port', default=81, type=int, help='Host port of nginx')
@click.option('--db-name', default='my_laravel_db')
@click.option('--db-user', default='myuser')
@click.option('--db-password', default='mypassword')
def render(out, project, http_port, db_name, db_user, db_password):
    """Write docker-compose.yml, nginx/default.conf and .env.example."""
    settings = StackSettings(
        project=project,
        proxy_host_port=http_port,
        database=DatabaseSettings(name=db_name, user=db_user, password=db_password),
    )
    ComposeConverter(settings).convert(out)
    NginxConverter(settings).convert(out)
    DotenvConverter(settings).convert(out)

@cli.command()
def commands():
    """Print the build-and-start and migration commands."""
    settings = StackSettings()
    click.echo(" ".join(settings.build_command()))
    click.echo(" ".join(settings.migrate_command()))

@cli.command(name='wait-db')
@click.option('--host', default='127.0.0.1', help='Host to probe (the published port is on the host)')
@click.option('--port', default=None, type=int, help='Port to probe (default: published database port)')
@click.option('--attempts', default=10, type=int)
@click.option('--delay', default=2.0, type=float, help='Seconds between attempts')
@click.pass_context
def wait_db(ctx, host, port, attempts, delay):
    """Wait until the database accepts TCP connections."""
    if port is None:
        port = StackSettings().database.host_port
        if os.path.exists(ctx.obj['file']):
            db = EnvContract(_load_config(ctx)).db
            if db is not None and db.ports and db.ports[0].host:
                port = db.ports[0].host
    try:
        tries = wait_for_port(host, port, attempts=attempts, delay=delay)
    except ConnectionRefusedError as e:
        _fail(ctx, e)
    click.echo(f"{host}:{port} is accepting connections (attempt {tries}).")

def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})

if __name__ == '__main__':
    main()
