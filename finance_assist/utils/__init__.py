"""
Utilities Module

Helper functions shared by the finance assist API.
"""

from .helpers import format_processing_time, preview_text, sanitize_header_value

__all__ = ["format_processing_time", "preview_text", "sanitize_header_value"]
