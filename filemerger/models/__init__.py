from .merge import DirectoryImportRequest, DragGestureRequest, OrderingRequest, ReorderRequest

__all__ = [
    "DirectoryImportRequest",
    "DragGestureRequest",
    "OrderingRequest",
    "ReorderRequest",
]
