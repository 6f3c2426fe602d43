"""Mr. Later: task-management client over a hosted backend."""

__version__ = "1.0.0"
