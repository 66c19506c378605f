"""
Delivery Module.

Ships grabbed walk buckets to the companion on a background thread.

Classes:
    DeliveryBatch: Walks reported for one block of vertices
    DeliveryPipeline: Queue, sender thread and admission control
"""

from .batch import DeliveryBatch
from .pipeline import DeliveryPipeline

__all__ = [
    'DeliveryBatch',
    'DeliveryPipeline',
]
