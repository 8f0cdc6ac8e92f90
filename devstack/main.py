from devstack.api.main import app

__all__ = ["app"]
