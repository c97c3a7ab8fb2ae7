from webstarter.routing.discovery import (
    FileRouteDiscovery,
    RouteDefinition,
    RouteDiscovery,
    collect_routes,
    explicit_routes,
    path_for,
)

__all__ = [
    "FileRouteDiscovery",
    "RouteDefinition",
    "RouteDiscovery",
    "collect_routes",
    "explicit_routes",
    "path_for",
]
