"""livebuild: turn ambient coding activity into build-in-public posts."""

__version__ = "0.1.0"
