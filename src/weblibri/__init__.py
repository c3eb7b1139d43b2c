"""
Weblibri reader client package.

Talks to a library server that converts books on demand. The conversion
subpackage polls readiness for one book at a time and hands off to the
browser reader once a rendition exists; `streamlit_app` is the front end.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
