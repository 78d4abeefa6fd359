"""
govkit

Token-weighted governance with a timelocked executor:
- Checkpointed voting power
- Governor proposal lifecycle (propose, vote, queue, execute, cancel)
- Timelock controller
- Async orchestration of proposals over JSON-RPC
"""

__version__ = "0.1.0"
