"""
Generation and conversation orchestration for the Salustia assistant.
"""
from .generation import generate_response
from .llm_client import LLMClient
from .orchestrator import Orchestrator

__all__ = ['generate_response', 'LLMClient', 'Orchestrator']
