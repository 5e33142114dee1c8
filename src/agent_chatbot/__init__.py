"""agent-chatbot: chat requests multiplexed onto pluggable CLI AI tools."""

__version__ = "0.1.0"
