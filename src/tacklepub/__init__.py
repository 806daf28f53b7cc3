"""tacklepub — crash-safe publishing into a flat-file JSON document store."""

__version__ = "0.1.0"
