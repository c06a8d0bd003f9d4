"""TaskHub: shared to-do lists, shopping tasks, channels and chat."""

__version__ = "0.6.0"
