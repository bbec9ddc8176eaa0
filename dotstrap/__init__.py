"""dotstrap — idempotent machine bootstrapping."""

__version__ = "0.1.0"
