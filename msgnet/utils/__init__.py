"""Shared utilities: configuration, logging setup and the LLM client factory."""
