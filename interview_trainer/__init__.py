"""
Mock-interview trainer service.

Generates structured-interview questions through a chat model, evaluates
answers, and bridges speech recognition and synthesis providers for the
browser front-end.
"""

__version__ = "0.1.0"
