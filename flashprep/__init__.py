"""
FlashPrep: personal flashcard sets with adaptive test-prep sessions.

Subpackages:
- core: error taxonomy
- delivery: card sets, record store, terminal interface
- study: weighted sampler, review sessions, mastery statistics
"""

__version__ = "1.0.0"
