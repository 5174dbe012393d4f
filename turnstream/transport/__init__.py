"""Agent backend transport for turnstream."""
from .base import AgentBackend, ChatMessage, TurnRequest
from .agent_client import AgentClient
from .line_reader import LineReader, aiter_lines, iter_lines

__all__ = [
    'AgentBackend', 'ChatMessage', 'TurnRequest',
    'AgentClient',
    'LineReader', 'aiter_lines', 'iter_lines',
]
