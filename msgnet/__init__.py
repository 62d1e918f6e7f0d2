"""msgnet: turn natural-language text into a typed entity/relationship/concept graph."""

__version__ = "0.1.0"
