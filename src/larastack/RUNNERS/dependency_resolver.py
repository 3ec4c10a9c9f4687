"""
Dependency resolution for services to determine startup and shutdown order.
"""
from typing import List, Optional
from ..MODELS.orchestration_config import OrchestrationConfig


class CircularDependencyError(ValueError):
    """
    Raised when services depend on each other in a cycle.
    """
    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")


class UndeclaredDependencyError(ValueError):
    """
    Raised when a service depends on a name that is not declared.
    """
    def __init__(self, service: str, dependency: str):
        self.service = service
        self.dependency = dependency
        super().__init__(f"Service {service} depends on undeclared service {dependency}")


class DependencyResolver:
    """
    Resolves the startup and shutdown order of services based on their dependencies.

    ``depends_on`` only orders process start; it says nothing about readiness.
    """
    def resolve_order(self, config: OrchestrationConfig) -> List[str]:
        """
        Determines the order to start services using a depth-first topological sort.
        Independent services keep their declaration order.

        :param config: The orchestration configuration.
        :return: Service names in the order they should be started.
        :raises UndeclaredDependencyError: If a dependency is not a declared service.
        :raises CircularDependencyError: If a circular dependency is detected.
        """
        services = config.services
        ordered: List[str] = []
        visited = set()
        path: List[str] = []

        def visit(name):
            if name in path:
                raise CircularDependencyError(path[path.index(name):] + [name])
            if name in visited:
                return
            path.append(name)
            for dep in services[name].depends_on:
                if dep not in services:
                    raise UndeclaredDependencyError(name, dep)
                visit(dep)
            path.pop()
            visited.add(name)
            ordered.append(name)

        for name in services:
            visit(name)

        return ordered

    def shutdown_order(self, config: OrchestrationConfig) -> List[str]:
        """
        Services stop in reverse start order.
        """
        return list(reversed(self.resolve_order(config)))

    def find_cycle(self, config: OrchestrationConfig) -> Optional[List[str]]:
        """
        Returns one dependency cycle, or None. Undeclared dependencies are ignored here.
        """
        pruned = config.model_copy(deep=True)
        for svc in pruned.services.values():
            svc.depends_on = [d for d in svc.depends_on if d in pruned.services]
        try:
            self.resolve_order(pruned)
        except CircularDependencyError as e:
            return e.cycle
        return None
