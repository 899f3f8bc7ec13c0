"""
clipfilter - AI-Powered Clipboard Filters
=========================================

Transforms clipboard content (text or image) by sending it through a
configurable AI-model HTTP endpoint and replacing the clipboard with the
result.

Author: clipfilter Project
"""

__version__ = "1.0.0"
