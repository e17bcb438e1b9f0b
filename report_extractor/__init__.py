"""Report Extractor - structured field extraction from documents with LLMs."""

__version__ = "0.1.0"
