"""beadshop - storefront backend for a handmade jewelry shop."""

__version__ = "0.1.0"
