"""Retrieval core grounding a study assistant in the content of a document."""

__version__ = "0.1.0"
