from .decision import SyncPlan, decide

__all__ = [
    'SyncPlan',
    'decide'
]
