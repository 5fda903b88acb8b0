#!/usr/bin/env python3

"""
Processing classes for read classification and read-name parsing.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional, Sequence, Tuple

import pysam

from .data_structures import AnnotationIndex, Interval


class MappingCode(IntEnum):
    """Classification outcome of one alignment, smaller is better."""
    EXON = 0
    AMBIGUOUS = 1
    INTRON = 2
    NOT_MAPPED = 3
    UNALIGNED = 4


# htslib bam_cigar_type(): bit 1 consumes query, bit 2 consumes reference
CONSUMES_QUERY = 1
CONSUMES_REFERENCE = 2
CIGAR_TYPE = {
    pysam.CMATCH: CONSUMES_QUERY | CONSUMES_REFERENCE,
    pysam.CINS: CONSUMES_QUERY,
    pysam.CDEL: CONSUMES_REFERENCE,
    pysam.CREF_SKIP: CONSUMES_REFERENCE,
    pysam.CSOFT_CLIP: CONSUMES_QUERY,
    pysam.CHARD_CLIP: 0,
    pysam.CPAD: 0,
    pysam.CEQUAL: CONSUMES_QUERY | CONSUMES_REFERENCE,
    pysam.CDIFF: CONSUMES_QUERY | CONSUMES_REFERENCE,
    pysam.CBACK: 0,
}
ALIGNED_BLOCK = CONSUMES_QUERY | CONSUMES_REFERENCE


@dataclass
class MappingResult:
    """Classification code, gene for unique hits, and distance to the exon boundary."""
    code: MappingCode
    gene_id: str = ""
    distance: int = 0

    @property
    def value(self) -> int:
        """Signed value written to the mapping tag: -distance for exon hits, else the code."""
        if self.code == MappingCode.EXON:
            return -self.distance
        return int(self.code)

    @property
    def is_unique(self) -> bool:
        return self.code == MappingCode.EXON


@dataclass
class ReadNameLayout:
    """Fixed layout of a read name: <barcode><separator><UMI><rest>."""
    barcode_length: int = 0
    umi_length: int = 0
    separator_length: int = 1

    def __post_init__(self):
        if self.barcode_length < 0 or self.umi_length < 0 or self.separator_length < 0:
            raise ValueError("Read name layout lengths must be >= 0")

    @property
    def umi_start(self) -> int:
        return self.barcode_length + self.separator_length

    def barcode(self, read_name: str) -> Optional[str]:
        """Cell barcode, or None when not configured or the name is too short."""
        if self.barcode_length <= 0 or len(read_name) < self.barcode_length:
            return None
        return read_name[:self.barcode_length]

    def umi(self, read_name: str) -> Optional[str]:
        """Molecular barcode, or None when not configured or the name is too short."""
        if self.umi_length <= 0 or len(read_name) < self.umi_start + self.umi_length:
            return None
        return read_name[self.umi_start:self.umi_start + self.umi_length]

    def parse(self, read_name: str) -> Tuple[Optional[str], Optional[str]]:
        return self.barcode(read_name), self.umi(read_name)

    def fits(self, read_name: str) -> bool:
        """Check the name holds every configured field."""
        required = 0
        if self.barcode_length > 0:
            required = self.barcode_length
        if self.umi_length > 0:
            required = self.umi_start + self.umi_length
        return len(read_name) >= required


class ReadClassifier:
    """Assign an alignment's aligned blocks to the exons of annotated genes."""

    def __init__(self, index: AnnotationIndex, match_strand: bool = True):
        self.index = index
        self.match_strand = match_strand

    def classify(self, position: int, cigar_ops: Iterable[Tuple[int, int]], strand: int,
                 chromosome: str, match_strand: Optional[bool] = None) -> MappingResult:
        """
        Classify one alignment from its CIGAR operations.

        Args:
            position: Leftmost reference coordinate (0-based)
            cigar_ops: (operation, length) pairs using pysam operation codes
            strand: +1 forward, -1 reverse, 0 unknown
            chromosome: Reference name of the alignment
            match_strand: Override the classifier's strand matching

        Returns:
            MappingResult for the whole read
        """
        if match_strand is None:
            match_strand = self.match_strand

        code = None
        gene_id = ""
        distance = 0
        cursor = position

        for op, length in cigar_ops:
            if length <= 0:
                continue
            op_type = CIGAR_TYPE.get(op, 0)

            if op_type == ALIGNED_BLOCK:
                block = Interval(cursor, cursor + length, strand)
                cursor += length
                segment = self._classify_block(chromosome, block, match_strand)

                if segment.code == MappingCode.EXON:
                    if code == MappingCode.EXON:
                        if segment.gene_id != gene_id:
                            # blocks on different genes
                            code = MappingCode.AMBIGUOUS
                            break
                        distance = min(distance, segment.distance)
                    else:
                        code = MappingCode.EXON
                        gene_id = segment.gene_id
                        distance = segment.distance
                elif code is None or segment.code < code:
                    code = segment.code

            elif op_type == CONSUMES_REFERENCE:
                cursor += length

        if code is None:
            return MappingResult(MappingCode.NOT_MAPPED)
        if code != MappingCode.EXON:
            return MappingResult(code)
        return MappingResult(code, gene_id, distance)

    def classify_segment(self, segment: pysam.AlignedSegment) -> MappingResult:
        """Classify a mapped pysam record."""
        return self.classify(
            segment.reference_start,
            segment.cigartuples or (),
            -1 if segment.is_reverse else 1,
            segment.reference_name,
        )

    def _classify_block(self, chromosome: str, block: Interval, match_strand: bool) -> MappingResult:
        candidates = self.index.candidates(chromosome, block)
        if not candidates:
            return MappingResult(MappingCode.NOT_MAPPED)

        code = MappingCode.NOT_MAPPED
        hit_gene = ""
        distance = 0
        for gene in candidates:
            if gene.in_exon(block, match_strand):
                if not hit_gene:
                    code = MappingCode.EXON
                    hit_gene = gene.gene_id
                    distance = gene.distance_to_end(block)
                elif gene.gene_id != hit_gene:
                    return MappingResult(MappingCode.AMBIGUOUS)
                else:
                    distance = min(distance, gene.distance_to_end(block))
            elif code > MappingCode.INTRON:
                code = MappingCode.INTRON

        if code == MappingCode.EXON:
            return MappingResult(code, hit_gene, distance)
        return MappingResult(code)


def classify_read(position: int, cigar_ops: Sequence[Tuple[int, int]], strand: int,
                  chromosome: str, match_strand: bool, index: AnnotationIndex) -> MappingResult:
    """Classify one alignment against an index without keeping a classifier around."""
    return ReadClassifier(index, match_strand).classify(position, cigar_ops, strand, chromosome)
