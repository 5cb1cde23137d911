"""
Phylogenetic tree parsing and manipulation.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from ..config import Params, ParameterError, parse_procedure


DEFAULT_BRANCH_LENGTH = 0.1


@dataclass(eq=False)
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Node identifier
    name : Optional[str]
        Node name (for leaves)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : Optional[float]
        Branch length to parent, None when absent from the input
    label : Optional[str]
        Branch label (e.g., '#2' to attach model 2 to this branch)
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = None
    children: list["TreeNode"] = field(default_factory=list)
    branch_length: Optional[float] = None
    label: Optional[str] = None

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0

    def add_child(self, child: "TreeNode") -> None:
        child.parent = self
        self.children.append(child)

    def __repr__(self) -> str:
        return f"TreeNode(id={self.id}, name={self.name!r}, n_children={len(self.children)})"


class Tree:
    """
    Phylogenetic tree.

    Attributes
    ----------
    root : TreeNode
        Root node of the tree
    """

    def __init__(self, root: TreeNode):
        self.root = root
        self._renumber()

    def _renumber(self) -> None:
        """Give nodes consecutive ids in post-order."""
        for i, node in enumerate(self.postorder()):
            node.id = i
        self._nodes = {node.id: node for node in self.postorder()}

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def leaves(self) -> list[TreeNode]:
        return [node for node in self.postorder() if node.is_leaf]

    @property
    def n_leaves(self) -> int:
        return len(self.leaves)

    @property
    def leaf_names(self) -> list[str]:
        return [node.name if node.name else str(node.id) for node in self.leaves]

    def node(self, node_id: int) -> TreeNode:
        return self._nodes[node_id]

    def leaf(self, name: str) -> TreeNode:
        for node in self.leaves:
            if node.name == name:
                return node
        raise ValueError(f"Leaf not found in tree: {name}")

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Parameters
        ----------
        newick_string : str
            Newick format tree; branches may carry a model label ``#n``
            after the node name

        Returns
        -------
        Tree
            Parsed tree
        """
        # Remove bracketed comments and whitespace between tokens
        newick = re.sub(r'\[[^\]]*\]', '', newick_string).strip()

        if ';' not in newick:
            raise ValueError("Invalid Newick format: missing semicolon")
        tree_line = newick[:newick.index(';')]
        tree_line = tree_line.replace('\n', '').replace('\t', '').replace('\r', '')
        if not tree_line.strip():
            raise ValueError("Invalid Newick format: no tree found")

        def skip_whitespace(s: str, pos: int) -> int:
            while pos < len(s) and s[pos] == ' ':
                pos += 1
            return pos

        def parse_node(s: str, start: int) -> tuple[TreeNode, int]:
            """Parse a node from position start in string s."""
            node = TreeNode(id=-1)
            pos = skip_whitespace(s, start)

            if pos < len(s) and s[pos] == '(':
                pos = skip_whitespace(s, pos + 1)
                while True:
                    child, pos = parse_node(s, pos)
                    node.add_child(child)
                    pos = skip_whitespace(s, pos)

                    if pos < len(s) and s[pos] == ',':
                        pos = skip_whitespace(s, pos + 1)
                        continue
                    elif pos < len(s) and s[pos] == ')':
                        pos = skip_whitespace(s, pos + 1)
                        break
                    else:
                        raise ValueError(f"Expected ',' or ')' at position {pos}")

            # Node name (leaves) or support value (internal nodes)
            name_start = pos
            while pos < len(s) and s[pos] not in ',:();# ':
                pos += 1
            if pos > name_start:
                node.name = s[name_start:pos]
            pos = skip_whitespace(s, pos)

            if pos < len(s) and s[pos] == '#':
                pos += 1
                label_start = pos
                while pos < len(s) and s[pos] not in ',:(); ':
                    pos += 1
                node.label = '#' + s[label_start:pos]
            pos = skip_whitespace(s, pos)

            if pos < len(s) and s[pos] == ':':
                pos = skip_whitespace(s, pos + 1)
                length_start = pos
                while pos < len(s) and s[pos] not in ',(); #':
                    pos += 1
                try:
                    node.branch_length = float(s[length_start:pos])
                except ValueError:
                    raise ValueError(f"Invalid branch length: {s[length_start:pos]}")
                pos = skip_whitespace(s, pos)

                # Labels may also follow the branch length
                if pos < len(s) and s[pos] == '#':
                    pos += 1
                    label_start = pos
                    while pos < len(s) and s[pos] not in ',(); ':
                        pos += 1
                    node.label = '#' + s[label_start:pos]

            return node, pos

        root, pos = parse_node(tree_line, 0)
        if skip_whitespace(tree_line, pos) != len(tree_line):
            raise ValueError(f"Unexpected characters after tree at position {pos}")
        root.parent = None
        return cls(root)

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        with open(filepath, 'r') as f:
            return cls.from_newick(f.read())

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        result = []

        def traverse(node: TreeNode) -> None:
            for child in node.children:
                traverse(child)
            result.append(node)

        traverse(self.root)
        return result

    def branch_nodes(self) -> list[TreeNode]:
        """Nodes carrying a branch (all but the root), in post-order."""
        return [node for node in self.postorder() if node.parent is not None]

    def branch_model_numbers(self, default: int = 1) -> dict[int, int]:
        """
        Model number attached to each branch, keyed by child node id.

        Labels like '#2' give model 2; unlabelled branches get the default.
        """
        numbers = {}
        for node in self.branch_nodes():
            if node.label is None:
                numbers[node.id] = default
                continue
            label_str = node.label.lstrip('#')
            try:
                numbers[node.id] = int(label_str)
            except ValueError:
                raise ValueError(f"Invalid branch label: {node.label}")
        return numbers

    def neighbours(self, node: TreeNode) -> Iterator[tuple[TreeNode, TreeNode]]:
        """
        Neighbours of a node, with the node owning the connecting branch.

        Yields
        ------
        tuple
            (neighbour, branch_owner) where branch_owner is the child end of
            the branch
        """
        for child in node.children:
            yield child, child
        if node.parent is not None:
            yield node.parent, node

    def set_missing_branch_lengths(self, value: float = DEFAULT_BRANCH_LENGTH) -> int:
        """Set absent branch lengths to a value; returns the number changed."""
        n_changed = 0
        for node in self.branch_nodes():
            if node.branch_length is None:
                node.branch_length = value
                n_changed += 1
        return n_changed

    def set_all_branch_lengths(self, value: float) -> None:
        for node in self.branch_nodes():
            node.branch_length = value

    def to_newick(self, precision: int = 6) -> str:
        """Write the tree in Newick format, with model labels."""
        def write(node: TreeNode) -> str:
            text = ""
            if node.children:
                text = "(" + ",".join(write(child) for child in node.children) + ")"
            if node.name is not None:
                text += node.name
            if node.label is not None:
                text += " " + node.label
            if node.parent is not None and node.branch_length is not None:
                text += f":{node.branch_length:.{precision}g}"
            return text

        return write(self.root) + ";"

    def __repr__(self) -> str:
        return f"Tree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves})"


def load_tree(params: Params) -> Tree:
    """
    Read the tree given by ``input.tree.file`` and initialise branch lengths.

    Options
    -------
    input.tree.file
        Newick file (required)
    init.brlen.method
        ``Input`` (default, absent lengths set to 0.1) or ``Equal(value=v)``
    """
    path = params.get_file_path("input.tree.file")
    tree_format = params.get_string("input.tree.format", "Newick")
    if tree_format != "Newick":
        raise ParameterError(f"Unknown tree format: {tree_format}")
    tree = Tree.from_file(path)

    name, args = parse_procedure(params.get_string("init.brlen.method", "Input"))
    if name == "Input":
        tree.set_missing_branch_lengths(DEFAULT_BRANCH_LENGTH)
    elif name == "Equal":
        tree.set_all_branch_lengths(float(args.get("value", DEFAULT_BRANCH_LENGTH)))
    else:
        raise ParameterError(f"Unknown branch length initialisation method: {name}")

    for node in tree.branch_nodes():
        if node.branch_length < 0:
            raise ValueError(f"Negative branch length above node {node.name or node.id}")
    return tree
