from .main import archive_once, run

__all__ = ["archive_once", "run"]
