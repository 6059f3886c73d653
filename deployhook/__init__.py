"""deployhook: GitHub push webhook receiver that runs a deploy command."""

__version__ = "1.0.0"
