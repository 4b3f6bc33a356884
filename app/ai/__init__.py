"""
Construction Budget Engine
AI module — optional budget structure generation.

Submodules:
    - budget_generator: prompt, answer parsing and the Gemini-backed generator
"""
