"""
Diff engine
Compares two snapshots of the same root and keeps only additions and modifications
"""

from typing import Optional

from contra_exec.execution.snapshot import FileTreeNode


def diff_trees(before: FileTreeNode, after: FileTreeNode) -> Optional[FileTreeNode]:
    """
    Return the minimal subtree of `after` that was added or changed since `before`

    A type flip reports the whole `after` node. Files compare by modification
    time and size only; contents are never read. Entries that exist only in
    `before` are not reported.

    Returns:
        Diff tree rooted at `after`'s name, or None when nothing changed
    """
    if before.is_dir != after.is_dir:
        return after

    if not after.is_dir:
        if before.modified_at_ns != after.modified_at_ns or before.size != after.size:
            return after
        return None

    before_children = before.children or {}
    changed = {}
    for name, after_child in (after.children or {}).items():
        before_child = before_children.get(name)
        if before_child is None:
            changed[name] = after_child
            continue
        child_diff = diff_trees(before_child, after_child)
        if child_diff is not None:
            changed[name] = child_diff

    if not changed:
        return None
    return after.model_copy(update={"children": changed})


def overlay(before: FileTreeNode, diff: Optional[FileTreeNode]) -> FileTreeNode:
    """Materialize a diff tree over `before`, returning the resulting tree"""
    if diff is None:
        return before
    if before.is_dir != diff.is_dir or not diff.is_dir:
        return diff

    children = dict(before.children or {})
    for name, diff_child in (diff.children or {}).items():
        before_child = children.get(name)
        children[name] = diff_child if before_child is None else overlay(before_child, diff_child)
    return diff.model_copy(update={"children": children})
