"""Streaming chat turn orchestration over hosted language-model providers."""

__version__ = "0.1.0"
