"""
Population genetics statistics on an ingroup alignment, with an optional
outgroup.

Statistics are requested with ``pop.stats``, a comma-separated list of
procedures such as ``TajimaD(positions=synonymous), MKT``. Results are
displayed and, when ``logfile`` is set, written to a log of ``key = value``
lines. A procedure used several times gets its rank appended to its keys
(``tajD``, ``tajD2``, ...).
"""

from typing import Callable, Optional

import numpy as np

from ..cli.display import Display, format_value
from ..config import Params, ParameterError, parse_procedure
from ..core.likelihood import ModelCollection, PhyloLikelihood
from ..distance import bionj_tree, pairwise_ml_distance, similarity_distance_matrix
from ..io.alphabet import Alphabet, GeneticCode, get_alphabet
from ..io.sequences import Alignment, load_alignment
from ..io.trees import Tree, load_tree
from ..models import K80, YN98
from ..optimize import optimize_parameters
from ..popgen import PolymorphismAlignment, non_synonymous_sites, synonymous_sites
from ..popgen import codon_sites, statistics


STOP_CODON_POLICIES = ("Keep", "RemoveIfLast", "RemoveAll")


class StatsLog:
    """
    Log file of results: ``# comment`` and ``key = value`` lines.

    Nothing is written when the path is ``none``.
    """

    def __init__(self, path: str = "none"):
        self.path = path
        self._file = None if path == "none" else open(path, "w")

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def comment(self, text: str) -> None:
        if self._file is not None:
            self._file.write(f"# {text}\n")

    def value(self, key: str, value) -> None:
        if self._file is not None:
            self._file.write(f"{key} = {format_value(value)}\n")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "StatsLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _ratio(numerator: float, denominator: float) -> float:
    """Division following IEEE rules: x/0 gives inf or nan instead of raising."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


class PopStatsAnalysis:
    """
    State of a population statistics run.

    Parameters
    ----------
    params : Params
        Program parameters
    display : Display
        Console output
    log : StatsLog
        Result log

    Attributes
    ----------
    ingroup : Alignment
        Ingroup sequences
    outgroup : Alignment or None
        Outgroup sequences, if any
    kappa : float
        Transition/transversion ratio, given or estimated
    omega : float or None
        dN/dS ratio estimated by the model fit (codon alignments)
    ancestral_sequence : np.ndarray or None
        Ancestral codon of each site, when ``estimate.ancestor`` is set
    """

    def __init__(self, params: Params, display: Display, log: StatsLog):
        self.params = params
        self.display = display
        self.log = log

        self.alphabet: Optional[Alphabet] = None
        self.genetic_code: Optional[GeneticCode] = None
        self.ingroup: Optional[Alignment] = None
        self.outgroup: Optional[Alignment] = None
        self.kappa = 1.0
        self.omega: Optional[float] = None
        self.model_fitted = False
        self.ancestral_sequence: Optional[np.ndarray] = None
        self.tool_counter: dict[str, int] = {}

        self.actions: dict[str, Callable[[Params, str], None]] = {
            "SiteFrequencies": self.site_frequencies,
            "Watterson75": self.watterson75,
            "Tajima83": self.tajima83,
            "TajimaD": self.tajima_d,
            "FuAndLiDStar": self.fu_li_d_star,
            "FuAndLiFStar": self.fu_li_f_star,
            "PiN_PiS": self.pin_pis,
            "dN_dS": self.dn_ds,
            "MKT": self.mk_test,
            "CodonSiteStatistics": self.codon_site_statistics,
        }

    @property
    def is_codon(self) -> bool:
        return self.alphabet is not None and self.alphabet.is_codon

    # ------------------------------------------------------------------
    # Data

    def load_data(self) -> None:
        """Read the alphabet, the sequences and their ingroup/outgroup split."""
        params = self.params
        self.alphabet = get_alphabet(params.get_string("alphabet", required=True))
        self.display.result("Alphabet", self.alphabet.name)
        if self.alphabet.is_codon:
            code_name = params.get_string("genetic_code", "Standard")
            self.display.result("Genetic Code", code_name)
            self.genetic_code = GeneticCode(code_name)

        if "input.sequence.file.ingroup" in params:
            ingroup = load_alignment(params, self.alphabet, ".ingroup", self.genetic_code, "all")
            data = PolymorphismAlignment(ingroup)
            if "input.sequence.file.outgroup" in params:
                data.append_outgroup(
                    load_alignment(params, self.alphabet, ".outgroup", self.genetic_code, "all")
                )
        else:
            data = PolymorphismAlignment(
                load_alignment(params, self.alphabet, "", self.genetic_code, "all")
            )
            for index in params.get_vector("input.sequence.outgroup.index"):
                try:
                    number = int(index)
                except ValueError:
                    raise ParameterError(f"Invalid outgroup index: '{index}'")
                data.set_as_outgroup_member(number - 1)
            for name in params.get_vector("input.sequence.outgroup.name"):
                self.display.result("Sequence from outgroup", name)
                data.set_as_outgroup_member(name)

        self.apply_stop_codon_policy(data)

        if data.has_outgroup:
            self.ingroup = data.extract_ingroup()
            self.outgroup = data.extract_outgroup()
        else:
            self.ingroup = data.alignment
        self.display.result("Number of sequences in ingroup", self.ingroup.n_species)
        self.display.result(
            "Number of sequences in outgroup",
            self.outgroup.n_species if self.outgroup is not None else 0,
        )

    def apply_stop_codon_policy(self, data: PolymorphismAlignment) -> None:
        policy = self.params.get_string("input.sequence.stop_codons_policy", "Keep")
        self.display.result("Stop codons policy", policy)
        if policy not in STOP_CODON_POLICIES:
            raise ValueError(f"Unrecognized option for input.sequence.stop_codons_policy: {policy}")
        if policy == "Keep":
            return
        if not self.is_codon:
            raise ValueError(f"Stop codons policy {policy} needs a codon alphabet.")

        if policy == "RemoveIfLast":
            if data.n_sites > 0 and data.last_site_has_stop(self.genetic_code):
                data.delete_site(data.n_sites - 1)
                self._info("last site contained a stop codon and was discarded.")
        else:
            n_removed = data.remove_sites_with_stop_codons(self.genetic_code)
            if n_removed:
                self._info(f"discarded {n_removed} sites with stop codons.")

    def _info(self, text: str) -> None:
        self.display.message(f"Info: {text}")
        self.log.comment(f"Info: {text}")

    # ------------------------------------------------------------------
    # Model fit

    def read_model_options(self) -> tuple[bool, bool]:
        """Returns (estimate kappa, estimate ancestor)."""
        params = self.params
        estimate_kappa = params.get_bool("estimate.kappa", False)
        self.kappa = params.get_float("kappa", 1.0)
        self.display.result("Initial or fixed Ts/Tv ratio (kappa):", self.kappa)

        estimate_ancestor = params.get_bool("estimate.ancestor", False)
        if estimate_ancestor and self.outgroup is None:
            raise ValueError("An outgroup sequence is needed for estimating ancestral states.")
        return estimate_kappa, estimate_ancestor

    def fitting_alignment(self) -> Alignment:
        """Ingroup, possibly sampled, followed by the first outgroup sequence."""
        params = self.params
        alignment = self.ingroup
        sample = params.get_bool("estimate.sample_ingroup", True)
        if sample:
            size = params.get_int("estimate.sample_ingroup.size", 10)
            if size > alignment.n_species:
                self.display.warning("Sample size higher than number of sequence. No sampling performed.")
                sample = False
        if sample:
            self.display.result("Nb of ingroup sequences for model fitting", size)
            rng = np.random.default_rng(params.get_int("seed", None))
            chosen = set(rng.choice(alignment.n_species, size=size, replace=False).tolist())
            alignment = alignment.subset([n for k, n in enumerate(alignment.names) if k in chosen])

        if self.outgroup is not None:
            # Only the first outgroup sequence is used
            alignment = alignment.append(self.outgroup.subset(self.outgroup.names[:1]))
        return alignment

    def fitting_tree(self, alignment: Alignment) -> Tree:
        method = self.params.get_string("input.tree.method", "bionj")
        if method == "user":
            return load_tree(self.params)
        if method != "bionj":
            raise ValueError("Invalid input.tree.method. Should be either 'user' or 'bionj'.")

        self.display.task("Estimating distance matrix")
        distances = similarity_distance_matrix(alignment)
        self.display.task_done()
        self.display.task("Computing BioNJ tree")
        tree = bionj_tree(distances, alignment.names)
        self.display.task_done()
        return tree

    def fit_model(self, estimate_kappa: bool, estimate_ancestor: bool) -> None:
        """
        Fit K80 (nucleotides) or YN98 with uniform codon frequencies, then
        read kappa, omega and the ancestral sequence from the fitted model.
        """
        alignment = self.fitting_alignment()
        tree = self.fitting_tree(alignment)

        if self.is_codon:
            model = YN98(self.alphabet, self.genetic_code, kappa=self.kappa)
        elif self.alphabet.is_nucleic:
            model = K80(self.alphabet, kappa=self.kappa)
        else:
            raise ValueError(f"Model fitting is not available for alphabet {self.alphabet.name}.")

        collection = ModelCollection({1: model}, tree)
        likelihood = PhyloLikelihood(alignment, tree, collection)
        if not np.isfinite(likelihood.log_likelihood()):
            raise ValueError(
                "Null likelihood. Possible cause: stop codon or numerical "
                "underflow (too many sequences)."
            )
        optimize_parameters(likelihood, self.params, self.display.result)
        fitted = likelihood.collection.model(1)

        if estimate_kappa:
            self.kappa = fitted.get_parameter("kappa")
            self.display.result("Estimated Ts/Tv ratio", self.kappa)
        self.log.value("Kappa", self.kappa)

        if estimate_ancestor:
            outgroup_leaf = tree.leaf(self.outgroup.names[0])
            self.ancestral_sequence = likelihood.ancestral_sequence(outgroup_leaf.parent)
        if self.is_codon:
            self.omega = fitted.get_parameter("omega")
        self.model_fitted = True

    # ------------------------------------------------------------------
    # Statistics

    def run_statistics(self) -> None:
        for description in self.params.get_vector("pop.stats"):
            name, args = parse_procedure(description)
            if name not in self.actions:
                raise ValueError(f"Unknown operation {name}.")
            self.tool_counter[name] = self.tool_counter.get(name, 0) + 1
            count = self.tool_counter[name]
            self.actions[name](Params(args), str(count) if count > 1 else "")

    def _positions(self, args: Params) -> tuple[str, Alignment]:
        positions = args.get_string("positions", "all")
        if positions in ("synonymous", "non-synonymous") and not self.is_codon:
            raise ValueError(
                "Synonymous and non-synonymous positions can only be defined "
                "with a codon alphabet."
            )
        if positions == "synonymous":
            return positions, synonymous_sites(self.ingroup, self.genetic_code)
        if positions == "non-synonymous":
            return positions, non_synonymous_sites(self.ingroup, self.genetic_code)
        if positions == "all":
            return positions, self.ingroup
        raise ValueError(f"Unrecognized option for argument 'positions': {positions}")

    def site_frequencies(self, args: Params, suffix: str) -> None:
        n_segregating = statistics.number_of_polymorphic_sites(self.ingroup)
        self.display.result("Number of segregating sites:", n_segregating)
        n_singletons = statistics.number_of_singletons(self.ingroup)
        self.display.result("Number of singletons:", n_singletons)
        self.log.comment("Site frequencies")
        self.log.value(f"NbSegSites{suffix}", n_segregating)
        self.log.value(f"NbSingl{suffix}", n_singletons)

    def watterson75(self, args: Params, suffix: str) -> None:
        theta = statistics.watterson75(self.ingroup, total_mutations=True, scaled=True)
        self.display.result("Watterson's (1975) theta:", theta)
        self.log.comment("Watterson's (1975) theta")
        self.log.value(f"thetaW75{suffix}", theta)

    def tajima83(self, args: Params, suffix: str) -> None:
        pi = statistics.tajima83(self.ingroup, scaled=True)
        self.display.result("Tajima's (1983) pi:", pi)
        self.log.comment("Tajima's (1983) pi")
        self.log.value(f"piT83{suffix}", pi)

    def tajima_d(self, args: Params, suffix: str) -> None:
        positions, alignment = self._positions(args)
        self.log.comment(f"Tajima's (1989) D ({positions} sites)")
        if statistics.number_of_polymorphic_sites(alignment) > 0:
            d = statistics.tajima_d(alignment)
            self.display.result("Tajima's (1989) D:", d)
            self.log.value(f"tajD{suffix}", d)
        else:
            self.display.result("Tajima's (1989) D:", "NA (0 polymorphic sites)")
            self.log.value(f"tajD{suffix}", "NA")

    def _fu_li(self, args: Params, suffix: str, statistic: str) -> None:
        _, alignment = self._positions(args)
        total_mutations = args.get_bool("tot_mut", True)
        if statistic == "D":
            value = statistics.fu_li_d_star(alignment, use_segregating_sites=not total_mutations)
            self.display.result("Fu and Li's (1993) D*:", value)
        else:
            value = statistics.fu_li_f_star(alignment, use_segregating_sites=not total_mutations)
            self.display.result("Fu and Li (1993)'s F*:", value)
        self.display.result(
            "  computed using",
            "total number of mutations" if total_mutations else "number of segregating sites",
        )
        self.log.comment(f"Fu and Li's (1993) {statistic}*")
        key = "TotMut" if total_mutations else "SegSit"
        self.log.value(f"fuLi{statistic}star{key}{suffix}", value)

    def fu_li_d_star(self, args: Params, suffix: str) -> None:
        self._fu_li(args, suffix, "D")

    def fu_li_f_star(self, args: Params, suffix: str) -> None:
        self._fu_li(args, suffix, "F")

    def pin_pis(self, args: Params, suffix: str) -> None:
        if not self.is_codon:
            raise ValueError("PiN_PiS can only be used with a codon alignment. Check the input alphabet!")
        gc = self.genetic_code
        pi_s = statistics.pi_synonymous(self.ingroup, gc)
        pi_n = statistics.pi_non_synonymous(self.ingroup, gc)
        n_s = statistics.mean_number_of_synonymous_sites(self.ingroup, gc, self.kappa)
        n_n = statistics.mean_number_of_non_synonymous_sites(self.ingroup, gc, self.kappa)
        ratio = _ratio(_ratio(pi_n, n_n), _ratio(pi_s, n_s))

        self.display.result("PiN:", pi_n)
        self.display.result("PiS:", pi_s)
        self.display.result("#N:", n_n)
        self.display.result("#S:", n_s)
        self.display.result("PiN / PiS (corrected for #N and #S):", ratio)
        if self.model_fitted:
            self.display.result("Omega (YN98 model):", self.omega)

        self.log.comment("PiN and PiS")
        self.log.value(f"PiN{suffix}", pi_n)
        self.log.value(f"PiS{suffix}", pi_s)
        self.log.value(f"NbN{suffix}", n_n)
        self.log.value(f"NbS{suffix}", n_s)
        if self.model_fitted:
            self.log.value(f"Omega{suffix}", self.omega)

    def dn_ds(self, args: Params, suffix: str) -> None:
        """Divergence between the ingroup and outgroup consensus sequences under YN98."""
        if not self.is_codon:
            raise ValueError("dN_dS can only be used with a codon alignment. Check the input alphabet!")
        if self.outgroup is None:
            raise ValueError("dN_dS requires at least one outgroup sequence.")
        model = YN98(self.alphabet, self.genetic_code)
        distance, fitted, _ = pairwise_ml_distance(
            model,
            self.ingroup.consensus(),
            self.outgroup.consensus(),
            estimate=("kappa", "omega"),
        )
        omega = fitted.get_parameter("omega")
        kappa = fitted.get_parameter("kappa")
        self.display.result("Yang and Nielsen's Omega (dN/dS):", omega)
        self.display.result("Yang and Nielsen's Kappa:", kappa)
        self.display.result("Yang and Nielsen's Distance:", distance)
        self.log.comment("dN and dS (Yang and Nielsen's 1998 substitution model)")
        self.log.value(f"OmegaDiv{suffix}", omega)
        self.log.value(f"KappaDiv{suffix}", kappa)
        self.log.value(f"DistanceDiv{suffix}", distance)

    def mk_test(self, args: Params, suffix: str) -> None:
        if not self.is_codon:
            raise ValueError(
                "MacDonald-Kreitman test can only be performed on a codon alignment. "
                "Check the input alphabet!"
            )
        if self.outgroup is None:
            raise ValueError("MacDonald-Kreitman test requires at least one outgroup sequence.")
        table = statistics.mk_table(self.ingroup, self.outgroup, self.genetic_code)
        for label, value in zip(("Pa", "Ps", "Da", "Ds"), table):
            self.display.result(f"MK table, {label}:", value)
        self.log.comment("MK table")
        self.log.comment("Pa Ps Da Ds")
        self.log.value(f"MKtable{suffix}", " ".join(str(v) for v in table))

    def codon_site_statistics(self, args: Params, suffix: str) -> None:
        """Write one line of polymorphism and divergence statistics per site."""
        if not self.is_codon:
            raise ValueError(
                "CodonSiteStatistics can only be used with a codon alignment. "
                "Check the input alphabet!"
            )
        path = args.get_file_path("output.file", required=False, must_exist=False)
        if path == "none":
            raise ParameterError("You must specify an output file for CodonSiteStatistics")
        self.display.result("Site statistics output to:", path)
        min_change = args.get_bool("complex_codon.min_change", False)
        has_outgroup = self.outgroup is not None and self.outgroup.n_species > 0
        has_ancestor = self.ancestral_sequence is not None

        columns = [
            "Site", "MissingDataFrequency", "NbAlleles", "MinorAlleleFrequency",
            "MajorAlleleFrequency", "MinorAllele", "MajorAllele", "MeanNumberSynPos",
            "IsSynPoly", "Is4Degenerated", "PiN", "PiS",
        ]
        if has_outgroup:
            self.display.result(
                "Complex codons path", "min non-synonymous" if min_change else "equal weight"
            )
            columns.append("OutgroupAllele")
        if has_ancestor:
            columns.append("AncestralAllele")
        if has_outgroup:
            columns += ["MeanNumberSynPosDiv", "dN", "dS"]
            consensus_in = self.ingroup.consensus()
            consensus_out = self.outgroup.consensus()

        with open(path, "w") as out:
            out.write("\t".join(columns) + "\n")
            for i in range(self.ingroup.n_sites):
                row = self._site_row(i, has_ancestor)
                n_alleles = int(row[2])
                if has_outgroup:
                    row.append(self.alphabet.char(self.outgroup.sequences[0, i]))
                if has_ancestor:
                    row.append(
                        "NNN" if n_alleles == 0
                        else self.alphabet.char(self.ancestral_sequence[i])
                    )
                if has_outgroup:
                    row += self._divergence(consensus_in[i], consensus_out[i], n_alleles, min_change)
                out.write("\t".join(row) + "\n")

    def _site_row(self, i: int, has_ancestor: bool) -> list[str]:
        gc = self.genetic_code
        column = self.ingroup.sequences[:, i]
        alleles = codon_sites.allele_counts(column)
        n_missing = int(np.sum((column < 0) | (column >= self.alphabet.n_states)))

        row = [str(self.ingroup.positions[i]), str(n_missing), str(len(alleles))]
        if not alleles:
            return row + ["NA"] * 9

        # First allele in code order wins ties
        minor = min(alleles, key=lambda c: (alleles[c], c))
        major = min(alleles, key=lambda c: (-alleles[c], c))
        if has_ancestor:
            n_syn = codon_sites.number_of_synonymous_positions(self.ancestral_sequence[i], gc, self.kappa)
        else:
            n_syn = codon_sites.mean_number_of_synonymous_positions(column, gc, self.kappa)
        row += [
            str(alleles[minor]),
            str(alleles[major]),
            self.alphabet.char(minor),
            self.alphabet.char(major),
            format_value(n_syn),
            format_value(codon_sites.is_synonymous_polymorphic(column, gc)),
            format_value(codon_sites.is_four_fold_degenerated(column, gc)),
            format_value(codon_sites.pi_non_synonymous(column, gc)),
            format_value(codon_sites.pi_synonymous(column, gc)),
        ]
        return row

    def _divergence(self, state_in: int, state_out: int, n_alleles: int, min_change: bool) -> list[str]:
        """Mean synonymous positions, dN and dS between the two consensus codons."""
        if (
            n_alleles == 0
            or not self.alphabet.is_resolved(state_out)
            or not self.alphabet.is_resolved(state_in)
        ):
            return ["NA", "NA", "NA"]
        gc = self.genetic_code
        n_syn = (
            codon_sites.number_of_synonymous_positions(state_out, gc, self.kappa)
            + codon_sites.number_of_synonymous_positions(state_in, gc, self.kappa)
        ) / 2.0
        n_total = float(codon_sites.number_of_differences(state_out, state_in))
        n_s = codon_sites.number_of_synonymous_differences(state_out, state_in, gc, min_change)
        return [format_value(n_syn), format_value(n_total - n_s), format_value(n_s)]

    # ------------------------------------------------------------------

    def run(self) -> None:
        self.load_data()
        estimate_kappa, estimate_ancestor = self.read_model_options()
        if estimate_kappa or estimate_ancestor:
            self.fit_model(estimate_kappa, estimate_ancestor)
        self.run_statistics()


def compute_pop_stats(params: Params, display: Display) -> PopStatsAnalysis:
    """
    Run all requested statistics.

    Errors are written to the log file as ``# Error: <message>`` before being
    raised again.
    """
    log_path = params.get_file_path("logfile", required=False, must_exist=False)
    with StatsLog(log_path) as log:
        analysis = PopStatsAnalysis(params, display, log)
        try:
            analysis.run()
        except Exception as e:
            log.comment(f"Error: {e}")
            raise
    return analysis
