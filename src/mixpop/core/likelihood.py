"""
Likelihood calculation for phylogenetic models.

This module implements Felsenstein's pruning algorithm over a tree whose
branches may carry different models, vectorized over sites, with per-node
scaling to prevent underflow.

Mixed models are handled in two ways:

- a mixed model attached to every branch is a **site mixture**: each site
  evolves along the whole tree under one sub-model, and the site likelihood
  is the probability-weighted sum of the sub-model likelihoods;
- a mixed model attached to only some branches is a **branch mixture**: on
  each of its branches the transition matrix is the probability-weighted
  average of the sub-model transition matrices.
"""

from typing import Optional

import numpy as np
from scipy.special import logsumexp

from .distributions import DiscreteDistribution, constant_distribution
from .matrix import transition_probabilities
from ..config import Params, ParameterError
from ..io.alphabet import Alphabet, GeneticCode
from ..io.sequences import Alignment
from ..io.trees import Tree, TreeNode


class ModelCollection:
    """
    Numbered models and their assignment to tree branches.

    Attributes
    ----------
    models : dict[int, model]
        Models by number, starting from 1
    branch_models : dict[int, int]
        Model number of each branch, keyed by the id of the child node
    rate_distribution : DiscreteDistribution
        Rate variation across sites
    """

    def __init__(self, models: dict, tree: Tree,
                 rate_distribution: Optional[DiscreteDistribution] = None):
        if not models:
            raise ParameterError("No substitution model given.")
        self.models = dict(sorted(models.items()))
        self.branch_models = tree.branch_model_numbers(default=min(self.models))
        self.rate_distribution = rate_distribution or constant_distribution(1.0)

        for node_id, number in self.branch_models.items():
            if number not in self.models:
                raise ParameterError(
                    f"Branch above node {node_id} uses model {number}, which is not defined."
                )
        n_states = {m.n_states for m in self.models.values()}
        if len(n_states) != 1:
            raise ValueError("All models must have the same number of states")

    @classmethod
    def from_params(cls, params: Params, alphabet: Alphabet, tree: Tree,
                    genetic_code: Optional[GeneticCode] = None,
                    alignment: Optional[Alignment] = None) -> "ModelCollection":
        """
        Read models from ``model=`` or ``model1=``, ``model2=``, ...

        Branches are assigned to models with ``#n`` labels in the tree;
        unlabelled branches use the first model. ``rate_distribution``
        gives the rate variation across sites (default ``Constant``).
        """
        from ..models.factory import build_model, build_rate_distribution

        models = {}
        if "model" in params:
            models[1] = build_model(params.get_string("model"), alphabet, genetic_code, alignment)
        number = 1
        while f"model{number}" in params:
            if number in models:
                raise ParameterError("Parameters 'model' and 'model1' cannot be used together.")
            models[number] = build_model(
                params.get_string(f"model{number}"), alphabet, genetic_code, alignment
            )
            number += 1
        if not models:
            raise ParameterError("Parameter 'model' not found.")

        rate_distribution = build_rate_distribution(
            params.get_string("rate_distribution", "Constant")
        )
        return cls(models, tree, rate_distribution)

    def model(self, number: int):
        if number not in self.models:
            raise ValueError(f"Unknown number of model {number}.")
        return self.models[number]

    @property
    def model_numbers(self) -> list[int]:
        return list(self.models)

    def mixed_model_numbers(self) -> list[int]:
        return [n for n, m in self.models.items() if m.is_mixed]

    def branches_of(self, number: int) -> list[int]:
        return [node_id for node_id, n in self.branch_models.items() if n == number]

    def site_mixture_number(self) -> Optional[int]:
        """Number of the mixed model attached to every branch, if any."""
        numbers = set(self.branch_models.values())
        if len(numbers) == 1:
            number = numbers.pop()
            if self.models[number].is_mixed:
                return number
        return None


class PhyloLikelihood:
    """
    Likelihood of an alignment on a tree under a model collection.

    Parameters
    ----------
    alignment : Alignment
        Alignment; its sequence names must match the tree leaves
    tree : Tree
        Tree with branch lengths
    collection : ModelCollection
        Models and their branches
    """

    def __init__(self, alignment: Alignment, tree: Tree, collection: ModelCollection):
        self.alignment = alignment
        self.tree = tree
        self.collection = collection

        leaf_names = set(tree.leaf_names)
        if len(leaf_names) != tree.n_leaves:
            raise ValueError("Duplicated leaf names in tree")
        missing = leaf_names - set(alignment.names)
        if missing:
            raise ValueError(
                f"No sequence found for leaf(s): {', '.join(sorted(missing))}"
            )
        extra = set(alignment.names) - leaf_names
        if extra:
            raise ValueError(
                f"Sequence(s) not found in tree: {', '.join(sorted(extra))}"
            )

        first_model = next(iter(collection.models.values()))
        self.n_states = first_model.n_states
        self._tips = self._tip_partials(first_model.state_map())
        self._cache_key = None
        self._class_log_likelihoods = None

    @property
    def n_sites(self) -> int:
        return self.alignment.n_sites

    def _tip_partials(self, state_map: np.ndarray) -> dict[int, np.ndarray]:
        """Conditional likelihoods of the leaves, keyed by node id."""
        alphabet = self.alignment.alphabet
        # Row of model-state indicators for every alphabet code, gaps last
        code_rows = np.zeros((alphabet.n_codes + 1, self.n_states))
        for code in range(alphabet.n_codes):
            for state in alphabet.resolve(code):
                if state_map[state] >= 0:
                    code_rows[code, state_map[state]] = 1.0
        code_rows[-1, :] = 1.0

        tips = {}
        for leaf in self.tree.leaves:
            codes = self.alignment.sequences[self.alignment.index(leaf.name)].astype(int)
            tips[leaf.id] = code_rows[np.where(codes < 0, alphabet.n_codes, codes)]
        return tips

    # ------------------------------------------------------------------
    # Transition matrices

    def _site_mixture(self):
        number = self.collection.site_mixture_number()
        if number is None:
            return None
        return self.collection.models[number].mixed_model

    def _n_classes(self) -> int:
        mixture = self._site_mixture()
        return 1 if mixture is None else mixture.n_submodels

    def _branch_matrices(self, model, lengths: np.ndarray, submodel: Optional[int]) -> np.ndarray:
        """Transition matrices of a model for several branch lengths."""
        if model.is_mixed:
            mixture = model.mixed_model
            Qs = mixture.get_Q_matrices()
            if submodel is not None:
                return transition_probabilities(Qs[submodel], mixture.frequencies(submodel), lengths)
            P = np.zeros((len(lengths), self.n_states, self.n_states))
            for p, Q, sub in zip(mixture.probabilities, Qs, mixture.submodels):
                if p > 0:
                    P += p * transition_probabilities(Q, sub.frequencies(), lengths)
            return P
        return transition_probabilities(model.get_Q_matrix(), model.frequencies(), lengths)

    def _all_branch_matrices(self, site_class: int, rate: float) -> dict[int, np.ndarray]:
        """Transition matrix of every branch, keyed by child node id."""
        site_mixture_number = self.collection.site_mixture_number()
        matrices = {}
        for number, model in self.collection.models.items():
            node_ids = self.collection.branches_of(number)
            if not node_ids:
                continue
            lengths = np.array([self.tree.node(i).branch_length for i in node_ids]) * rate
            submodel = site_class if number == site_mixture_number else None
            P = self._branch_matrices(model, lengths, submodel)
            for node_id, P_branch in zip(node_ids, P):
                matrices[node_id] = P_branch
        return matrices

    def root_frequencies(self, site_class: int = 0) -> np.ndarray:
        """
        Frequencies of the states at the root.

        Taken from the site mixture class when there is one, otherwise from
        the model of the first branch below the root.
        """
        mixture = self._site_mixture()
        if mixture is not None:
            return mixture.frequencies(site_class)
        first_child = self.tree.root.children[0]
        model = self.collection.models[self.collection.branch_models[first_child.id]]
        if model.is_mixed:
            return model.mixed_model.mean_frequencies()
        return model.frequencies()

    # ------------------------------------------------------------------
    # Pruning

    def _prune(self, matrices: dict[int, np.ndarray]) -> tuple[np.ndarray, np.ndarray]:
        """
        Conditional likelihoods at the root.

        Returns
        -------
        tuple
            (partials of shape (n_sites, n_states), log scaling factors per site)
        """
        partials = {}
        log_scale = np.zeros(self.n_sites)
        for node in self.tree.postorder():
            if node.is_leaf:
                partials[node.id] = self._tips[node.id]
                continue
            L = np.ones((self.n_sites, self.n_states))
            for child in node.children:
                # Sum over child states: L[s, i] *= sum_j P[i, j] * L_child[s, j]
                L *= partials.pop(child.id) @ matrices[child.id].T
            L, scale = _rescale(L)
            log_scale += scale
            partials[node.id] = L
        return partials[self.tree.root.id], log_scale

    def _key(self) -> tuple:
        lengths = tuple(node.branch_length for node in self.tree.branch_nodes())
        site_mixture_number = self.collection.site_mixture_number()
        probabilities = tuple(
            tuple(m.mixed_model.probabilities)
            for n, m in self.collection.models.items()
            if m.is_mixed and n != site_mixture_number
        )
        return lengths, probabilities

    def invalidate(self) -> None:
        """Forget cached results after models or branch lengths changed."""
        self._cache_key = None

    def _compute(self) -> np.ndarray:
        """
        Log-likelihood of each site class at each site.

        Conditional likelihoods of the site mixture classes do not depend on
        the class probabilities, so they are reused until branch lengths or
        branch mixture probabilities change.
        """
        key = self._key()
        if key == self._cache_key and self._class_log_likelihoods is not None:
            return self._class_log_likelihoods

        rates = self.collection.rate_distribution
        n_classes = self._n_classes()
        result = np.zeros((n_classes, self.n_sites))
        with np.errstate(divide="ignore"):
            for c in range(n_classes):
                pi = self.root_frequencies(c)
                per_rate = np.zeros((rates.n, self.n_sites))
                for r, rate in enumerate(rates.values):
                    root, log_scale = self._prune(self._all_branch_matrices(c, rate))
                    per_rate[r] = np.log(root @ pi) + log_scale
                result[c] = logsumexp(per_rate, axis=0, b=rates.probabilities[:, np.newaxis])

        self._class_log_likelihoods = result
        self._cache_key = key
        return result

    def _class_log_weights(self) -> np.ndarray:
        mixture = self._site_mixture()
        if mixture is None:
            return np.zeros(1)
        with np.errstate(divide="ignore"):
            return np.log(mixture.probabilities)

    def log_likelihood_per_site(self) -> np.ndarray:
        """Natural log of the likelihood of each site."""
        class_ll = self._compute()
        weights = self._class_log_weights()[:, np.newaxis]
        with np.errstate(divide="ignore", invalid="ignore"):
            return logsumexp(class_ll + weights, axis=0)

    def likelihood_per_site(self) -> np.ndarray:
        return np.exp(self.log_likelihood_per_site())

    def log_likelihood(self) -> float:
        return float(np.sum(self.log_likelihood_per_site()))

    def null_likelihood_sites(self) -> np.ndarray:
        """Indices of the sites with a null (or undefined) likelihood."""
        return np.flatnonzero(~np.isfinite(self.log_likelihood_per_site()))

    def class_log_likelihoods_per_site(self) -> np.ndarray:
        """
        Log-likelihood of each site conditional on each site mixture class.

        Returns
        -------
        np.ndarray, shape (n_classes, n_sites)
            One row when no mixed model spans the whole tree
        """
        return self._compute().copy()

    def class_posteriors_per_site(self) -> np.ndarray:
        """Posterior probability of each site mixture class at each site."""
        joint = self._compute() + self._class_log_weights()[:, np.newaxis]
        with np.errstate(invalid="ignore"):
            return np.exp(joint - logsumexp(joint, axis=0))

    # ------------------------------------------------------------------
    # Ancestral states

    def posterior_at_node(self, node: TreeNode) -> np.ndarray:
        """
        Marginal posterior probabilities of the states at a node.

        The tree is rerooted at the node: the partial likelihood of each
        neighbouring subtree is computed away from the node and combined with
        the root frequencies. Valid for reversible models.

        Returns
        -------
        np.ndarray, shape (n_sites, n_states)
        """
        rates = self.collection.rate_distribution
        class_weights = np.exp(self._class_log_weights())
        total = np.zeros((self.n_sites, self.n_states))
        scaled = []
        for c in range(self._n_classes()):
            pi = self.root_frequencies(c)
            for r, rate in enumerate(rates.values):
                matrices = self._all_branch_matrices(c, rate)
                L = np.ones((self.n_sites, self.n_states))
                log_scale = np.zeros(self.n_sites)
                cache = {}
                for neighbour, owner in self.tree.neighbours(node):
                    partial, scale = self._directed_partial(neighbour, node, matrices, cache)
                    L *= partial @ matrices[owner.id].T
                    log_scale += scale
                if node.is_leaf:
                    L *= self._tips[node.id]
                joint = L * pi[np.newaxis, :]
                weight = class_weights[c] * rates.probabilities[r]
                scaled.append((joint, log_scale, weight))

        # Bring all classes and rates to a common scale per site
        max_scale = np.max([s for _, s, _ in scaled], axis=0)
        for joint, log_scale, weight in scaled:
            total += weight * joint * np.exp(log_scale - max_scale)[:, np.newaxis]
        norm = total.sum(axis=1, keepdims=True)
        norm[norm == 0] = 1.0
        return total / norm

    def _directed_partial(self, node: TreeNode, origin: TreeNode,
                          matrices: dict[int, np.ndarray], cache: dict):
        """Partial likelihood of the subtree containing node, seen from origin."""
        key = (node.id, origin.id)
        if key in cache:
            return cache[key]
        if node.is_leaf:
            result = (self._tips[node.id], np.zeros(self.n_sites))
        else:
            L = np.ones((self.n_sites, self.n_states))
            log_scale = np.zeros(self.n_sites)
            for neighbour, owner in self.tree.neighbours(node):
                if neighbour is origin:
                    continue
                partial, scale = self._directed_partial(neighbour, node, matrices, cache)
                L *= partial @ matrices[owner.id].T
                log_scale += scale
            L, scale = _rescale(L)
            result = (L, log_scale + scale)
        cache[key] = result
        return result

    def ancestral_sequence(self, node: TreeNode) -> np.ndarray:
        """
        Most probable state at each site of a node, as alphabet codes.
        """
        posterior = self.posterior_at_node(node)
        best = np.argmax(posterior, axis=1)
        state_map = next(iter(self.collection.models.values())).state_map()
        inverse = np.full(self.n_states, -1, dtype=int)
        for code, state in enumerate(state_map):
            if state >= 0:
                inverse[state] = code
        return inverse[best].astype(np.int16)

    def with_alignment(self, alignment: Alignment) -> "PhyloLikelihood":
        """Same tree and models on another alignment."""
        return PhyloLikelihood(alignment, self.tree, self.collection)


def _rescale(L: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Divide each site by its largest value; returns the log factors."""
    factors = L.max(axis=1)
    factors[factors <= 0] = 1.0
    return L / factors[:, np.newaxis], np.log(factors)


def fix_likelihood(likelihood: PhyloLikelihood, params: Params, display=None) -> PhyloLikelihood:
    """
    Check that every site has a non-null likelihood.

    Sites with a null likelihood are listed. They are removed when
    ``input.sequence.remove_saturated_sites`` is set, otherwise an error is
    raised.

    Parameters
    ----------
    likelihood : PhyloLikelihood
        Likelihood to check
    params : Params
        Program parameters
    display : callable, optional
        Receives one message per null-likelihood site

    Returns
    -------
    PhyloLikelihood
        The input, or a new likelihood on the remaining sites
    """
    null_sites = likelihood.null_likelihood_sites()
    if len(null_sites) == 0:
        return likelihood

    alignment = likelihood.alignment
    if display is not None:
        display("!!! Site(s) with null likelihood:")
        for i in null_sites:
            column = " ".join(alignment.alphabet.char(c) for c in alignment.sequences[:, i])
            display(f"!!! Site {alignment.positions[i]}: {column}")

    if not params.get_bool("input.sequence.remove_saturated_sites", False):
        raise ValueError(
            f"Likelihood is null at {len(null_sites)} site(s). "
            "Check the data or set input.sequence.remove_saturated_sites=yes."
        )

    mask = np.ones(alignment.n_sites, dtype=bool)
    mask[null_sites] = False
    if not mask.any():
        raise ValueError("No site left after removing sites with null likelihood.")
    fixed = likelihood.with_alignment(alignment.filter_sites(mask))
    if len(fixed.null_likelihood_sites()) > 0:
        raise ValueError("Likelihood is still null after removing saturated sites.")
    return fixed
