from . import lessons, tasks

__all__ = ["lessons", "tasks"]
