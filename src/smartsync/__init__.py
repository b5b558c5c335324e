"""SmartSync: reconcile a local vault with a SmartSync remote store."""

__version__ = "0.4.0"
