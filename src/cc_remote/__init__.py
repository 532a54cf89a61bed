"""cc-remote: durable remote sessions pairing tmux with a public tunnel."""

__version__ = "0.1.0"

from .core.lifecycle import SessionManager
from .core.models import SessionRecord

__all__ = ["SessionManager", "SessionRecord", "__version__"]
