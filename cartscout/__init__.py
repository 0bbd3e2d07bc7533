"""CartScout: human-paced storefront catalog acquisition."""

__version__ = "0.4.0"
