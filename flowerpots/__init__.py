"""My Flower Pots backend: potted-plant tracking API."""

__version__ = "0.3.0"
