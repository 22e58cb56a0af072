"""careerfit: RIASEC scoring, career matching and usage-limited result access."""

__version__ = "0.1.0"
