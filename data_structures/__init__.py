"""
Data structures for tree-based models.

Trees are linked ``TreeNode`` objects owned by a ``DecisionTree``; a leaf keeps
the class histogram of the training samples that reached it.
"""

from data_structures.tree import DecisionTree, TreeNode

__all__ = ["DecisionTree", "TreeNode"]
