"""Agentic tactical overlay analysis for images and video frames."""
