"""
Observability Package — AI cost ledger

Usage::

    from study_assistant.observability.cost_tracker import CostTracker
    await CostTracker().track_usage(
        model="gpt-4o-mini",
        operation="summary",
        input_tokens=500,
        output_tokens=150,
        user_id=user_id,
        document_id=document_id,
    )
"""

from study_assistant.observability.cost_tracker import CostTracker

__all__ = ["CostTracker"]
