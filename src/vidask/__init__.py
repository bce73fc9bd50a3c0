"""vidask: ask questions about a transcript, answered from its most relevant passages."""

__version__ = "0.1.0"
