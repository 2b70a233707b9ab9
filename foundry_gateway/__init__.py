"""Foundry gateway: authenticated access to hosted and local LLMs for the Foundry VTT plugin."""

__version__ = "1.0.0"
