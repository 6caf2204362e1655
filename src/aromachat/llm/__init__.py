"""
AromaChat - LLM Client.

Provides structured LLM calls via Instructor and YAML prompt configurations.
"""

from aromachat.llm.client import call_llm, get_client
from aromachat.llm.prompt_manager import PromptManager, PromptManagerError, get_prompt_manager

__all__ = [
    "get_client",
    "call_llm",
    "PromptManager",
    "PromptManagerError",
    "get_prompt_manager",
]
