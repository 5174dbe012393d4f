"""Rich UI components for turnstream."""
from .turn_renderer import TurnView, render_projection

__all__ = ['TurnView', 'render_projection']
