"""
BioNJ tree reconstruction (Gascuel 1997).
"""

import numpy as np

from ..io.trees import Tree, TreeNode


def bionj_tree(distances: np.ndarray, names: list[str], positive_lengths: bool = True) -> Tree:
    """
    Build an unrooted tree from a distance matrix with BioNJ.

    BioNJ is neighbor joining where the distances of a new node are a
    variance-weighted combination of those of the joined pair. The returned
    tree has a trifurcating root (the last three nodes joined).

    Parameters
    ----------
    distances : np.ndarray, shape (n, n)
        Symmetric distance matrix
    names : list[str]
        Leaf names, in matrix order
    positive_lengths : bool
        Replace negative branch lengths by 0

    Returns
    -------
    Tree
        Tree with branch lengths
    """
    D = np.array(distances, dtype=float)
    n = len(names)
    if D.shape != (n, n):
        raise ValueError(f"Distance matrix has shape {D.shape} for {n} names")
    if n < 2:
        raise ValueError("At least 2 sequences are needed to build a tree")
    if not np.allclose(D, D.T):
        raise ValueError("Distance matrix is not symmetric")

    def length(value: float) -> float:
        return max(value, 0.0) if positive_lengths else value

    nodes = [TreeNode(id=-1, name=name) for name in names]

    if n == 2:
        root = TreeNode(id=-1)
        for node in nodes:
            node.branch_length = length(D[0, 1] / 2.0)
            root.add_child(node)
        return Tree(root)

    V = D.copy()
    active = list(range(n))

    while len(active) > 3:
        m = len(active)
        sub = D[np.ix_(active, active)]
        sums = sub.sum(axis=1)
        Q = (m - 2) * sub - sums[:, np.newaxis] - sums[np.newaxis, :]
        np.fill_diagonal(Q, np.inf)
        a, b = np.unravel_index(np.argmin(Q), Q.shape)
        i, j = active[a], active[b]

        d_ij = D[i, j]
        delta_i = 0.5 * d_ij + (sums[a] - sums[b]) / (2.0 * (m - 2))
        delta_j = d_ij - delta_i

        others = [k for k in active if k not in (i, j)]
        if V[i, j] > 0:
            lam = 0.5 + np.sum(V[j, others] - V[i, others]) / (2.0 * (m - 2) * V[i, j])
            lam = min(max(lam, 0.0), 1.0)
        else:
            lam = 0.5

        u = TreeNode(id=-1)
        nodes[i].branch_length = length(delta_i)
        nodes[j].branch_length = length(delta_j)
        u.add_child(nodes[i])
        u.add_child(nodes[j])

        # New node takes the place of i
        new_D = lam * (D[i, others] - delta_i) + (1 - lam) * (D[j, others] - delta_j)
        new_V = lam * V[i, others] + (1 - lam) * V[j, others] - lam * (1 - lam) * V[i, j]
        D[i, others] = new_D
        D[others, i] = new_D
        V[i, others] = new_V
        V[others, i] = new_V
        nodes[i] = u
        active.remove(j)

    a, b, c = active
    root = TreeNode(id=-1)
    for x, y, z in ((a, b, c), (b, a, c), (c, a, b)):
        nodes[x].branch_length = length(0.5 * (D[x, y] + D[x, z] - D[y, z]))
        root.add_child(nodes[x])
    return Tree(root)
