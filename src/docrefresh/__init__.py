"""docrefresh: scheduled drift audits for per-topic best-practices documents."""

__version__ = "0.1.0"
