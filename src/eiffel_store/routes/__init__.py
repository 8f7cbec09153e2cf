from eiffel_store.routes.health import create_app, router

__all__ = ["create_app", "router"]
