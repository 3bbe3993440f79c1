"""
Training results webhook.
Receives signed Typeform quiz results and updates user training state.
"""

__version__ = "1.0.0"
