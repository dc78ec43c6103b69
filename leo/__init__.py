"""Leo -- a lightweight personal assistant.

Turns a request into a final answer by iteratively consulting a Gemini
backend and running the local tools it asks for.
"""

__version__ = "0.1.0"
