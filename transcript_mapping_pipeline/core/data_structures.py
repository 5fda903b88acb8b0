#!/usr/bin/env python3

"""
Core data structures for the transcript mapping pipeline.

Defines genomic intervals, genes with their exons, and the per-chromosome
annotation index that reads are classified against.
"""

import bisect
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from intervaltree import IntervalTree


VALID_STRANDS = (-1, 0, 1)


def strand_from_char(strand: str) -> int:
    """Convert a '+'/'-' strand column into +1/-1, anything else is unknown (0)."""
    if strand == '+':
        return 1
    if strand == '-':
        return -1
    return 0


@dataclass
class Interval:
    """Half-open genomic range [start, end) with a strand flag.

    Two intervals are equivalent under the ordering when they overlap,
    otherwise the one further left is less.
    """
    start: int
    end: int
    strand: int = 0
    gene_id: Optional[str] = None

    def __post_init__(self):
        """Validate interval data after initialization."""
        if self.start >= self.end:
            raise ValueError(f"Invalid interval coordinates: {self.start}-{self.end}")
        if self.strand not in VALID_STRANDS:
            raise ValueError(f"Invalid strand: {self.strand}")

    @property
    def length(self) -> int:
        """Get interval length."""
        return self.end - self.start

    def overlaps(self, other: 'Interval') -> bool:
        """Check if this interval overlaps with another."""
        return self.start < other.end and other.start < self.end

    def strand_compatible(self, other: 'Interval') -> bool:
        """Strands match, or either side is unknown."""
        return self.strand == other.strand or self.strand == 0 or other.strand == 0

    def __lt__(self, other: 'Interval') -> bool:
        return self.end <= other.start

    def __gt__(self, other: 'Interval') -> bool:
        return other.end <= self.start


@dataclass
class Gene:
    """A gene on one chromosome and its exons, sorted by start once loaded."""
    gene_id: str = ""
    chromosome: str = ""
    exons: List[Interval] = field(default_factory=list)
    # lookup arrays rebuilt by sort_exons()
    _starts: List[int] = field(default_factory=list, repr=False, compare=False)
    _max_ends: List[int] = field(default_factory=list, repr=False, compare=False)

    def set_id(self, gene_id: str) -> None:
        if gene_id == self.gene_id:
            return
        self.gene_id = gene_id
        for exon in self.exons:
            exon.gene_id = gene_id

    def add_exon(self, exon: Interval) -> None:
        """Add an exon; it is owned by this gene from now on."""
        exon.gene_id = self.gene_id or exon.gene_id
        self.exons.append(exon)
        self._starts = []

    def sort_exons(self) -> None:
        """Sort exons by start and build the running max-end used by queries."""
        self.exons.sort(key=lambda x: x.start)
        self._starts = [exon.start for exon in self.exons]
        self._max_ends = []
        running = None
        for exon in self.exons:
            running = exon.end if running is None else max(running, exon.end)
            self._max_ends.append(running)

    @property
    def start(self) -> int:
        """Leftmost exon start."""
        return min(exon.start for exon in self.exons)

    @property
    def end(self) -> int:
        """Rightmost exon end."""
        return max(exon.end for exon in self.exons)

    @property
    def span(self) -> Interval:
        """Gene span as an interval, used for chromosome level queries."""
        return Interval(self.start, self.end, 0, self.gene_id)

    @property
    def exon_count(self) -> int:
        return len(self.exons)

    def overlaps(self, query: Interval) -> bool:
        """Check if the query overlaps the gene span."""
        return bool(self.exons) and self.start < query.end and query.start < self.end

    def overlapping_exons(self, query: Interval) -> List[Interval]:
        """Exons overlapping the query, in ascending start order."""
        if len(self._starts) != len(self.exons):
            self.sort_exons()

        # exons starting before query.end, walked right to left while the
        # running max end still reaches past query.start
        idx = bisect.bisect_left(self._starts, query.end) - 1
        hits = []
        while idx >= 0 and self._max_ends[idx] > query.start:
            exon = self.exons[idx]
            if exon.end > query.start:
                hits.append(exon)
            idx -= 1
        hits.reverse()
        return hits

    def in_exon(self, query: Interval, match_strand: bool = False) -> bool:
        """Check if the query overlaps any exon, optionally on a compatible strand."""
        for exon in self.overlapping_exons(query):
            if not match_strand or exon.strand_compatible(query):
                return True
        return False

    def distance_to_end(self, query: Interval) -> int:
        """Smallest distance from the query's leading edge to a boundary of an overlapping exon.

        The leading edge is the query start on the forward or unknown
        strand and the query end on the reverse strand. Returns 0 when no
        exon overlaps the query.
        """
        edge = query.end if query.strand == -1 else query.start
        distances = [
            min(abs(edge - exon.start), abs(exon.end - edge))
            for exon in self.overlapping_exons(query)
        ]
        return min(distances) if distances else 0


class AnnotationIndex:
    """Chromosome -> genes ordered by span, with interval-tree candidate lookup."""

    def __init__(self):
        self._genes: Dict[str, List[Gene]] = {}
        self._trees: Dict[str, IntervalTree] = {}
        self.finalized = False

    def add_gene(self, chromosome: str, gene: Gene) -> None:
        """Add a gene to a chromosome bucket; call finalize() before querying."""
        if not gene.exons:
            return
        gene.chromosome = chromosome
        self._genes.setdefault(chromosome, []).append(gene)
        self.finalized = False

    def merge(self, other: 'AnnotationIndex') -> None:
        """Append all genes of another index to this one."""
        for chromosome, genes in other._genes.items():
            for gene in genes:
                self.add_gene(chromosome, gene)
        self.finalize()

    def finalize(self) -> None:
        """Sort exons and genes, then build one interval tree per chromosome."""
        self._trees = {}
        for chromosome, genes in self._genes.items():
            for gene in genes:
                gene.sort_exons()
            # stable sort keeps insertion order for identical spans
            genes.sort(key=lambda g: (g.start, g.end))
            tree = IntervalTree()
            for order, gene in enumerate(genes):
                tree.addi(gene.start, gene.end, order)
            self._trees[chromosome] = tree
        self.finalized = True

    def __contains__(self, chromosome: str) -> bool:
        return chromosome in self._genes

    def __len__(self) -> int:
        return len(self._genes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._genes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, AnnotationIndex):
            return NotImplemented
        return self._genes == other._genes

    @property
    def chromosomes(self) -> List[str]:
        return list(self._genes)

    def genes(self, chromosome: str) -> List[Gene]:
        """Genes of a chromosome in index order (empty if unknown)."""
        return self._genes.get(chromosome, [])

    @property
    def gene_count(self) -> int:
        """Total number of genes across all chromosomes."""
        return sum(len(genes) for genes in self._genes.values())

    def gene_ids(self) -> List[str]:
        """All gene ids, chromosome by chromosome in index order."""
        return [gene.gene_id for genes in self._genes.values() for gene in genes]

    def candidates(self, chromosome: str, query: Interval) -> List[Gene]:
        """Every gene whose span overlaps the query, in index order."""
        if not self.finalized:
            self.finalize()
        tree = self._trees.get(chromosome)
        if tree is None:
            return []
        genes = self._genes[chromosome]
        return [genes[hit.data] for hit in sorted(tree.overlap(query.start, query.end),
                                                  key=lambda hit: hit.data)]

    def scan_candidates(self, chromosome: str, query: Interval) -> List[Gene]:
        """Linear scan equivalent of candidates()."""
        return [gene for gene in self.genes(chromosome) if gene.overlaps(query)]

    def log_summary(self) -> None:
        """Log per-chromosome gene counts."""
        logging.info(f"Annotation statistics: {self.gene_count} genes on {len(self)} chromosomes")
        for chromosome, genes in self._genes.items():
            logging.info(f"\tchromosome:[{chromosome}] number of genes:[{len(genes)}]")
        for chromosome, genes in self._genes.items():
            logging.debug(f"First gene in chromosome {chromosome}: {genes[0].gene_id} "
                          f"{genes[0].start}-{genes[0].end} ({genes[0].exon_count} exons)")
