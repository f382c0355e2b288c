"""linkctl — workflow orchestrator for parent repositories with linked (submodule) repositories."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
