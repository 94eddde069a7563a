"""taskgate - completion gates and evidence fraud detection for work queues."""

__version__ = "0.3.0"
