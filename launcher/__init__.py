"""DS2API local launcher: dependency bootstrap and backend/frontend supervision."""

__version__ = "1.0.0"
