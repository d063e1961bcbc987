"""
Finance Assist

Retrieval-augmented question answering over documents ingested from URLs,
served over a small Flask API.
"""

__version__ = "1.0.0"
