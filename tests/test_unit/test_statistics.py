"""
Unit tests for polymorphism containers and summary statistics.
"""

import numpy as np
import pytest

from mixpop.io.sequences import Alignment
from mixpop.popgen import PolymorphismAlignment, non_synonymous_sites, statistics, synonymous_sites


class TestSiteCounts:
    """Test segregating sites and singletons."""

    def test_counts(self, dna_sample):
        assert statistics.number_of_polymorphic_sites(dna_sample) == 2
        assert statistics.number_of_singletons(dna_sample) == 1
        assert statistics.total_number_of_mutations(dna_sample) == 2
        assert statistics.number_of_singleton_mutations(dna_sample) == 1

    def test_incomplete_sites_ignored(self, dna):
        aln = Alignment.from_sequences(["a", "b", "c"], ["AC", "GN", "AT"], dna)
        assert statistics.number_of_complete_sites(aln) == 1
        assert statistics.number_of_polymorphic_sites(aln) == 1

    def test_triallelic_site(self, dna):
        aln = Alignment.from_sequences(["a", "b", "c", "d"], ["A", "C", "G", "G"], dna)
        assert statistics.number_of_polymorphic_sites(aln) == 1
        assert statistics.total_number_of_mutations(aln) == 2
        assert statistics.number_of_singletons(aln) == 2
        assert statistics.number_of_singleton_mutations(aln) == 2


class TestThetaEstimators:
    """Test Watterson, Tajima and Fu & Li statistics."""

    def test_watterson(self, dna_sample):
        assert statistics.watterson75(dna_sample) == pytest.approx(2.0 / (11.0 / 6.0) / 10.0)
        assert statistics.watterson75(dna_sample, scaled=False) == pytest.approx(12.0 / 11.0)

    def test_tajima83(self, dna_sample):
        assert statistics.tajima83(dna_sample, scaled=False) == pytest.approx(7.0 / 6.0)
        assert statistics.tajima83(dna_sample) == pytest.approx(7.0 / 60.0)

    def test_tajima_d(self, dna_sample):
        assert statistics.tajima_d(dna_sample) == pytest.approx(0.5916, abs=1e-3)

    def test_fu_li(self, dna_sample):
        d_star = statistics.fu_li_d_star(dna_sample)
        f_star = statistics.fu_li_f_star(dna_sample)
        assert np.isfinite(d_star) and d_star > 0
        assert np.isfinite(f_star)

    def test_monomorphic_alignment_gives_nan(self, dna):
        aln = Alignment.from_sequences(["a", "b", "c"], ["ACGT"] * 3, dna)
        assert statistics.watterson75(aln) == 0.0
        assert np.isnan(statistics.tajima_d(aln))
        assert np.isnan(statistics.fu_li_d_star(aln))
        assert np.isnan(statistics.fu_li_f_star(aln))

    def test_too_few_sequences(self, dna):
        aln = Alignment.from_sequences(["a", "b"], ["AC", "AT"], dna)
        assert np.isnan(statistics.tajima_d(aln))
        assert np.isnan(statistics.fu_li_d_star(aln))
        assert np.isnan(statistics.fu_li_f_star(aln))
        assert statistics.tajima83(aln) == pytest.approx(0.5)

        single = Alignment.from_sequences(["a"], ["AC"], dna)
        assert np.isnan(statistics.watterson75(single))
        assert np.isnan(statistics.tajima83(single))


class TestCodonStatistics:
    """Test synonymous and non-synonymous diversity."""

    def test_pi_synonymous_and_non_synonymous(self, codon_ingroup, standard_code):
        # Leu site: CTT/CTC/CTT, Met/Ile site: ATG/ATA/ATG
        assert statistics.pi_synonymous(codon_ingroup, standard_code) == pytest.approx(2.0 / 3.0)
        assert statistics.pi_non_synonymous(codon_ingroup, standard_code) == pytest.approx(2.0 / 3.0)

    def test_numbers_of_sites_add_up(self, codon_ingroup, standard_code):
        syn = statistics.mean_number_of_synonymous_sites(codon_ingroup, standard_code)
        non_syn = statistics.mean_number_of_non_synonymous_sites(codon_ingroup, standard_code)
        assert syn + non_syn == pytest.approx(3.0 * codon_ingroup.n_sites)

    def test_requires_codons(self, dna_sample, standard_code):
        with pytest.raises(ValueError, match="codon alignment"):
            statistics.pi_synonymous(dna_sample, standard_code)

    def test_mk_table(self, codon_ingroup, codon_outgroup, standard_code):
        assert statistics.mk_table(codon_ingroup, codon_outgroup, standard_code) == [1, 1, 1, 1]


class TestPolymorphismAlignment:
    """Test ingroup/outgroup handling."""

    def test_outgroup_by_name_and_index(self, codon_ingroup, codon_outgroup):
        data = PolymorphismAlignment(codon_ingroup.append(codon_outgroup))
        assert not data.has_outgroup
        data.set_as_outgroup_member("out")
        assert data.extract_outgroup().names == ["out"]
        assert data.extract_ingroup().names == ["in1", "in2", "in3"]

        data = PolymorphismAlignment(codon_ingroup.append(codon_outgroup))
        data.set_as_outgroup_member(3)
        assert data.extract_outgroup().names == ["out"]
        with pytest.raises(ValueError, match="out of range"):
            data.set_as_outgroup_member(7)

    def test_append_outgroup(self, codon_ingroup, codon_outgroup):
        data = PolymorphismAlignment(codon_ingroup)
        data.append_outgroup(codon_outgroup)
        assert data.has_outgroup
        assert data.outgroup.tolist() == [False, False, False, True]

    def test_stop_codon_sites(self, codons, standard_code):
        aln = Alignment.from_sequences(["a", "b"], ["ATGCAATAA", "ATGTAATAG"], codons)
        data = PolymorphismAlignment(aln)
        assert data.last_site_has_stop(standard_code)
        assert data.remove_sites_with_stop_codons(standard_code) == 2
        assert data.n_sites == 1

    def test_synonymous_site_selection(self, codon_ingroup, standard_code):
        syn = synonymous_sites(codon_ingroup, standard_code)
        non_syn = non_synonymous_sites(codon_ingroup, standard_code)
        assert syn.positions.tolist() == [1]
        assert non_syn.positions.tolist() == [4]
