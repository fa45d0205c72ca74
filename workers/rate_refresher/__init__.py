from .main import persist_rate, run

__all__ = ["persist_rate", "run"]
