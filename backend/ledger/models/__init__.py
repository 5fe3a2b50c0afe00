"""
Models package - Import all database models for easy access.
"""
from ledger.models.account import Account
from ledger.models.operation import Operation, OperationType
from ledger.models.position import Position, AssetType, PositionStatus

__all__ = [
    "Account",
    "Operation",
    "OperationType",
    "Position",
    "AssetType",
    "PositionStatus",
]
