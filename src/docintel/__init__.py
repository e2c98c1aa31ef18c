"""docintel - OCR block graphs to a searchable, question-answering index."""

__version__ = "0.1.0"
