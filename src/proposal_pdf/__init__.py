"""
Proposal PDF Service package.

FastAPI application that issues signed upload URLs for large proposal
payloads and converts proposal HTML to PDF through an external renderer.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
