"""
AromaChat - essential-oil recipe assistant.

Hosts the recipe wizard's server side (webhook proxy, LLM-backed wizard
endpoint) and an interactive terminal wizard on top of `create_recipe`.
"""

__version__ = "1.0.0"
