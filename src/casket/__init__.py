"""casket: content-addressable storage with capability tickets."""

__version__ = "0.1.0"
