from .messages import run_migrations

__all__ = ["run_migrations"]
