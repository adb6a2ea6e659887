"""Nodes package initialization"""

from .lease_node import LeaseStoreNode

__all__ = ['LeaseStoreNode']
