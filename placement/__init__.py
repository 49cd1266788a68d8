"""
Placement Test Backend

This package provides the timed assessment engine behind the level-gated
placement test ladder:
1. A static level catalog (duration, question count, question-type mix)
2. A session aggregate enforcing the attempt state machine and scoring
3. Storage ports with in-memory and SQLAlchemy implementations
4. A read model for progress, level statistics and history
5. A thin FastAPI surface consumed by the BFF layer
"""

__version__ = "0.1.0"
