"""
API Package.

HTTP surface of the service.

Modules:
- main: create_app() application factory
- container: service wiring and lifecycle
- dependencies: service lookup, webhook and admin authentication
- errors: error envelope handlers
- routers/: webhook and admin endpoints
"""
