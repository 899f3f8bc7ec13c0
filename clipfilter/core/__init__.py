"""
Core Engine
===========

This package contains the template-driven API integration engine: the
provider catalog, placeholder substitution, endpoint resolution, request
building, response extraction, model discovery and the filter executor.
"""
