from .registry import (
    PurposeCreate, PurposeUpdate, CategoryCreate, CategoryUpdate,
    ContextInstanceIn, ContextLevelIn, PolicyRefInput
)
from .data_request import DataRequestCreate, DataRequestStatusUpdate

__all__ = [
    "PurposeCreate",
    "PurposeUpdate",
    "CategoryCreate",
    "CategoryUpdate",
    "ContextInstanceIn",
    "ContextLevelIn",
    "PolicyRefInput",
    "DataRequestCreate",
    "DataRequestStatusUpdate",
]
