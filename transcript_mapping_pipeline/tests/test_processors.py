#!/usr/bin/env python3

"""
Unit tests for read classification and read-name parsing.

Exercises the CIGAR walk against small annotation indexes, covering unique,
ambiguous, intronic and unannotated reads plus strand handling.
"""

import unittest
import sys
import os

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

import pysam

from transcript_mapping_pipeline.core.data_structures import AnnotationIndex, Gene, Interval
from transcript_mapping_pipeline.core.processors import (
    MappingCode, MappingResult, ReadClassifier, ReadNameLayout, classify_read
)

M, I, D, N, S = pysam.CMATCH, pysam.CINS, pysam.CDEL, pysam.CREF_SKIP, pysam.CSOFT_CLIP


def build_index(genes):
    """Build an index from (chromosome, gene_id, strand, [(start, end), ...]) tuples."""
    index = AnnotationIndex()
    for chromosome, gene_id, strand, exons in genes:
        gene = Gene(gene_id=gene_id)
        for start, end in exons:
            gene.add_exon(Interval(start, end, strand))
        index.add_gene(chromosome, gene)
    index.finalize()
    return index


class TestMappingResult(unittest.TestCase):
    """Test the signed mapping value."""

    def test_value(self):
        self.assertEqual(MappingResult(MappingCode.EXON, "G1", 20).value, -20)
        self.assertEqual(MappingResult(MappingCode.EXON, "G1", 0).value, 0)
        self.assertEqual(MappingResult(MappingCode.AMBIGUOUS).value, 1)
        self.assertEqual(MappingResult(MappingCode.INTRON).value, 2)
        self.assertEqual(MappingResult(MappingCode.UNALIGNED).value, 4)
        self.assertTrue(MappingResult(MappingCode.EXON, "G1").is_unique)
        self.assertFalse(MappingResult(MappingCode.INTRON).is_unique)


class TestReadClassifier(unittest.TestCase):
    """Test the per-read CIGAR walk."""

    def setUp(self):
        """One two-exon gene, plus neighbours for ambiguity tests."""
        self.index = build_index([
            ("chr1", "G1", 1, [(100, 200), (300, 400)]),
            ("chr1", "G2", 1, [(1000, 1100)]),
            ("chr1", "G3", -1, [(1050, 1200)]),
            ("chr1", "G4", 0, [(2000, 2100)]),
        ])
        self.classifier = ReadClassifier(self.index, match_strand=True)

    def classify(self, position, cigar, strand=1, chromosome="chr1", **kwargs):
        return self.classifier.classify(position, cigar, strand, chromosome, **kwargs)

    def test_spliced_read_within_one_gene(self):
        """Two blocks on two exons of the same gene are a unique hit."""
        result = self.classify(120, [(M, 30), (N, 170), (M, 30)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")
        self.assertEqual(result.distance, 20)
        self.assertEqual(result.value, -20)

    def test_block_inside_exon(self):
        result = self.classify(150, [(M, 40)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")
        self.assertEqual(result.distance, 50)

    def test_same_gene_keeps_smallest_distance(self):
        """Distance is the minimum over the blocks of the read."""
        result = self.classify(105, [(M, 10), (N, 280), (M, 10)])
        self.assertEqual(result.gene_id, "G1")
        self.assertEqual(result.distance, 5)

    def test_intron(self):
        """A block between two exons of one gene is intronic."""
        result = self.classify(250, [(M, 10)])
        self.assertEqual(result.code, MappingCode.INTRON)
        self.assertEqual(result.gene_id, "")
        self.assertEqual(result.value, 2)

    def test_intergenic(self):
        """A block outside every gene span is not mapped."""
        self.assertEqual(self.classify(500, [(M, 50)]).code, MappingCode.NOT_MAPPED)

    def test_unknown_chromosome(self):
        result = self.classify(120, [(M, 30)], chromosome="chrUn")
        self.assertEqual(result.code, MappingCode.NOT_MAPPED)
        self.assertEqual(result.value, 3)

    def test_blocks_on_different_genes_are_ambiguous(self):
        """Each block alone is unique but the read spans two genes."""
        self.assertEqual(self.classify(150, [(M, 30)]).gene_id, "G1")
        self.assertEqual(self.classify(1010, [(M, 30)]).gene_id, "G2")

        result = self.classify(150, [(M, 30), (N, 830), (M, 30)])
        self.assertEqual(result.code, MappingCode.AMBIGUOUS)
        self.assertEqual(result.gene_id, "")
        self.assertEqual(result.value, 1)

    def test_overlapping_genes_strand_aware(self):
        """Overlapping genes on opposite strands are resolved by strand."""
        forward = self.classify(1060, [(M, 20)], strand=1)
        self.assertEqual(forward.code, MappingCode.EXON)
        self.assertEqual(forward.gene_id, "G2")

        reverse = self.classify(1060, [(M, 20)], strand=-1)
        self.assertEqual(reverse.code, MappingCode.EXON)
        self.assertEqual(reverse.gene_id, "G3")

    def test_overlapping_genes_without_strand_matching(self):
        """Without strand matching the same read hits both genes."""
        result = self.classify(1060, [(M, 20)], strand=1, match_strand=False)
        self.assertEqual(result.code, MappingCode.AMBIGUOUS)

        classifier = ReadClassifier(self.index, match_strand=False)
        self.assertEqual(classifier.classify(1060, [(M, 20)], -1, "chr1").code, MappingCode.AMBIGUOUS)

    def test_wrong_strand_inside_exon_is_intronic(self):
        """An antisense read over an exon only overlaps the gene span."""
        result = self.classify(150, [(M, 30)], strand=-1)
        self.assertEqual(result.code, MappingCode.INTRON)

    def test_unknown_strand_gene_matches_both(self):
        self.assertEqual(self.classify(2010, [(M, 30)], strand=1).gene_id, "G4")
        self.assertEqual(self.classify(2010, [(M, 30)], strand=-1).gene_id, "G4")

    def test_best_code_across_blocks(self):
        """The read takes the best code of its blocks."""
        # intergenic then intronic
        result = self.classify(50, [(M, 20), (N, 180), (M, 10)])
        self.assertEqual(result.code, MappingCode.INTRON)
        # intronic then exonic
        result = self.classify(250, [(M, 10), (N, 90), (M, 20)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")

    def test_clips_and_insertions_do_not_move_reference(self):
        """Soft clips and insertions consume no reference."""
        result = self.classify(105, [(S, 15), (M, 10), (S, 3)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.distance, 5)

        # blocks [180, 185) and [185, 195)
        result = self.classify(180, [(M, 5), (I, 100), (M, 10)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.distance, 15)

    def test_deletion_moves_reference(self):
        # 190 + 5 + 110 = 305: the deletion moves the cursor onto the second exon
        result = self.classify(190, [(M, 5), (D, 110), (M, 10)])
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")
        self.assertEqual(result.distance, 5)

    def test_read_without_aligned_blocks(self):
        self.assertEqual(self.classify(120, []).code, MappingCode.NOT_MAPPED)
        self.assertEqual(self.classify(120, [(S, 50)]).code, MappingCode.NOT_MAPPED)

    def test_classify_read_function(self):
        result = classify_read(120, [(M, 30), (N, 170), (M, 30)], 1, "chr1", True, self.index)
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")


class TestClassifySegment(unittest.TestCase):
    """Test classification of pysam records."""

    def test_pysam_record(self):
        index = build_index([("chr1", "G1", 1, [(100, 200), (300, 400)])])
        header = pysam.AlignmentHeader.from_dict({'SQ': [{'SN': 'chr1', 'LN': 10000}]})

        segment = pysam.AlignedSegment(header)
        segment.query_name = "read1"
        segment.query_sequence = "A" * 60
        segment.reference_id = 0
        segment.reference_start = 120
        segment.cigartuples = [(M, 30), (N, 170), (M, 30)]

        classifier = ReadClassifier(index)
        result = classifier.classify_segment(segment)
        self.assertEqual(result.code, MappingCode.EXON)
        self.assertEqual(result.gene_id, "G1")

        segment.flag = 16
        self.assertEqual(classifier.classify_segment(segment).code, MappingCode.INTRON)


class TestReadNameLayout(unittest.TestCase):
    """Test barcode and UMI extraction from read names."""

    def test_barcode_and_umi(self):
        layout = ReadNameLayout(barcode_length=16, umi_length=10)
        barcode, umi = layout.parse("AAAACCCCGGGGTTTT_ACGTACGTAC_extra")
        self.assertEqual(barcode, "AAAACCCCGGGGTTTT")
        self.assertEqual(umi, "ACGTACGTAC")

    def test_disabled_fields(self):
        self.assertEqual(ReadNameLayout().parse("AAAACCCC_GGGG"), (None, None))
        self.assertEqual(ReadNameLayout(barcode_length=4).parse("AAAACCCC_GGGG"), ("AAAA", None))
        self.assertEqual(ReadNameLayout(umi_length=4).parse("AAAACCCC_GGGG"), (None, "AAAC"))

    def test_short_names(self):
        """Names too short for a field get no value for it."""
        layout = ReadNameLayout(barcode_length=8, umi_length=6)
        self.assertEqual(layout.parse("AAAACCCC_GGG"), ("AAAACCCC", None))
        self.assertEqual(layout.parse("AAAA"), (None, None))
        self.assertFalse(layout.fits("AAAACCCC_GGG"))
        self.assertTrue(layout.fits("AAAACCCC_GGGTTT"))

    def test_negative_lengths(self):
        with self.assertRaises(ValueError):
            ReadNameLayout(barcode_length=-1)


if __name__ == '__main__':
    unittest.main()
