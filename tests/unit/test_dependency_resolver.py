import os
import pytest
from larastack.PARSERS.compose_parser import ComposeParser
from larastack.MODELS.orchestration_config import OrchestrationConfig
from larastack.MODELS.service_definition import ServiceDefinition
from larastack.RUNNERS.dependency_resolver import (
    DependencyResolver,
    CircularDependencyError,
    UndeclaredDependencyError,
)

DEPLOY_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'deploy')

def make_config(**deps):
    return OrchestrationConfig(services={
        name: ServiceDefinition(name=name, image_name='busybox', depends_on=list(d))
        for name, d in deps.items()
    })

def test_shipped_stack_order():
    config = ComposeParser(context={}).parse(os.path.join(DEPLOY_DIR, 'docker-compose.yml'))
    resolver = DependencyResolver()
    assert resolver.resolve_order(config) == ['postgres', 'app', 'nginx']
    assert resolver.shutdown_order(config) == ['nginx', 'app', 'postgres']

def test_independent_services_keep_declaration_order():
    config = make_config(web=[], worker=[], cache=[])
    assert DependencyResolver().resolve_order(config) == ['web', 'worker', 'cache']

def test_diamond():
    config = make_config(web=['api', 'assets'], api=['db'], assets=['db'], db=[])
    order = DependencyResolver().resolve_order(config)
    assert order.index('db') < order.index('api') < order.index('web')
    assert order.index('assets') < order.index('web')

def test_cycle():
    config = make_config(a=['b'], b=['a'])
    with pytest.raises(CircularDependencyError) as excinfo:
        DependencyResolver().resolve_order(config)
    assert excinfo.value.cycle == ['a', 'b', 'a']
    assert DependencyResolver().find_cycle(config) == ['a', 'b', 'a']

def test_undeclared_dependency():
    config = make_config(app=['postgres'])
    with pytest.raises(UndeclaredDependencyError) as excinfo:
        DependencyResolver().resolve_order(config)
    assert excinfo.value.dependency == 'postgres'
    assert DependencyResolver().find_cycle(config) is None
