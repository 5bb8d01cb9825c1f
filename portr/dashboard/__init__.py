from .app import run_dashboard
from .controller import Controller, Mode

__all__ = ["Controller", "Mode", "run_dashboard"]
