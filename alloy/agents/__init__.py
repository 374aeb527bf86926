"""Agents: LLM and third-party service wrappers for each procurement step."""
