"""pinrel: dependency-ordered release of a mutually pinned npm package set."""

__version__ = "0.3.0"
