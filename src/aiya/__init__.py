"""aiya - secure shell access for an AI coding assistant.

The ``ExecuteCommand`` tool runs shell commands inside a workspace after
categorizing them, enforcing workspace boundaries, and asking the user
when policy requires it. Every decision is audit logged.
"""

__version__ = "0.1.0"
