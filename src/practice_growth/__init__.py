"""Practice growth engine: lead scoring, routing and nurture automation."""

__version__ = "1.0.0"
