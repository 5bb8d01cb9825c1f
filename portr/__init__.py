"""portr - see what is listening on your ports and stop it safely."""
import os


def _get_app_version():
    try:
        v_file = os.path.join(os.path.dirname(__file__), "VERSION")
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "0.0.0"


__version__ = _get_app_version()
