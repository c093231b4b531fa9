"""Client-side chat state with serialized, durable mutations."""

__version__ = "0.1.0"
