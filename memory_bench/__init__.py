"""
Long-Conversation Memory Benchmark.

Compares strategies for keeping a bounded, information-preserving view of an
unboundedly long conversation. The core strategy delegates old messages to a
sub-model, parses its sectioned output into typed knowledge stores and merges
them incrementally, so facts are never silently replaced by an incomplete
re-extraction.
"""

__version__ = "0.1.0"
