#!/usr/bin/env python3

"""
File parsers for gene annotations.

Handles GFF3 parsing for the ENSEMBL, GENCODE and RefSeq conventions and
flat BED-style exon tables, producing an AnnotationIndex.
"""

import gzip
import logging
import os
from enum import Enum
from typing import Dict, List, Optional, Set, TextIO, Tuple

from .data_structures import AnnotationIndex, Gene, Interval, strand_from_char
from .exceptions import FormatError, ParseError, PipelineIOError

# GFF3 columns
SEQID, SOURCE, TYPE, START, END, SCORE, STRAND, PHASE, ATTRIBUTES = range(9)

GFF3_SUFFIXES = ('.gff3', '.gff', '.gff3.gz', '.gff.gz')


class Dialect(Enum):
    """GFF3 conventions of the supported annotation sources."""
    ENSEMBL = "ensembl"
    GENCODE = "gencode"
    REFSEQ = "refseq"


# checked in this order on every line, first hit wins
DIALECT_SIGNATURES: List[Tuple[str, Dialect]] = [
    ("GENCODE", Dialect.GENCODE),
    ("\tEnsembl\t", Dialect.ENSEMBL),
    ("RefSeq\tregion", Dialect.REFSEQ),
]


def normalize_chr_name(chr_name: str) -> str:
    """Prefix bare chromosome names with 'chr'.

    Names already starting with 'chr' and names longer than 4 characters
    (contigs, spike-ins) are left alone; 'MT' becomes 'chrM'.
    """
    if chr_name.startswith("chr"):
        return chr_name
    if len(chr_name) > 4:
        return chr_name
    if chr_name == "MT":
        return "chrM"
    return "chr" + chr_name


def open_annotation(file_path: str) -> TextIO:
    """Open a plain or gzip-compressed annotation file for reading."""
    if file_path.endswith('.gz'):
        return gzip.open(file_path, 'rt')
    return open(file_path, 'r')


def is_gff3(file_path: str) -> bool:
    return file_path.lower().endswith(GFF3_SUFFIXES)


def guess_dialect(file_path: str) -> Dialect:
    """Scan an annotation until a source signature is found."""
    with open_annotation(file_path) as f:
        for line in f:
            for marker, dialect in DIALECT_SIGNATURES:
                if marker in line:
                    logging.info(f"Guessing annotation source: {dialect.name}")
                    return dialect

    raise FormatError(
        "Annotation source not recognised. Current supported sources: ENSEMBL, GENCODE and RefSeq",
        file_path
    )


def parse_attributes(attr_string: str) -> Dict[str, str]:
    """Parse a GFF3 attributes column into a dictionary."""
    attributes = {}
    for attr in attr_string.split(';'):
        attr = attr.strip()
        if '=' in attr:
            key, value = attr.split('=', 1)
            attributes[key] = value
    return attributes


def refseq_gene_id(attributes: Dict[str, str]) -> str:
    """Numeric GeneID from a RefSeq Dbxref attribute, empty if absent."""
    dbxref = attributes.get('Dbxref', '')
    pos = dbxref.find('GeneID:')
    if pos == -1:
        return ""
    return dbxref[pos + len('GeneID:'):].split(',', 1)[0]


class AnnotationLoader:
    """Parse GFF3 or BED annotations into an AnnotationIndex with O(n) complexity."""

    def __init__(self, file_path: str, fix_chr_names: bool = False):
        self.file_path = file_path
        self.fix_chr_names = fix_chr_names
        self.dialect: Optional[Dialect] = None

        # chromosome -> gene id -> gene, in order of first appearance
        self._buckets: Dict[str, Dict[str, Gene]] = {}
        # ENSEMBL hierarchy
        self._recorded_genes: Set[str] = set()
        self._transcript_to_gene: Dict[str, str] = {}

        self.exon_count = 0
        self.skipped_lines = 0

    def load(self, index: Optional[AnnotationIndex] = None) -> AnnotationIndex:
        """Parse the annotation and return a finalized index.

        Genes are added to ``index`` when one is given, so several
        annotation files can be combined.
        """
        if not os.path.exists(self.file_path):
            raise PipelineIOError(f"Annotation file not found: {self.file_path}")

        if is_gff3(self.file_path):
            logging.info(f"Adding gff3 annotation: {self.file_path}")
            self.parse_gff3()
        else:
            logging.info(f"Adding bed annotation: {self.file_path}")
            self.parse_bed()

        if index is None:
            index = AnnotationIndex()
        gene_count = 0
        for chromosome, genes in self._buckets.items():
            for gene in genes.values():
                index.add_gene(chromosome, gene)
                gene_count += 1
        index.finalize()

        logging.info(f"Loaded {self.exon_count} exons in {gene_count} genes from {self.file_path}")
        if self.skipped_lines:
            logging.warning(f"Skipped {self.skipped_lines} malformed lines in {self.file_path}")
        return index

    def parse_gff3(self) -> None:
        """Parse a GFF3 file after detecting its dialect."""
        self.dialect = guess_dialect(self.file_path)

        try:
            with open_annotation(self.file_path) as f:
                for line_num, line in enumerate(f, 1):
                    line = line.rstrip('\n\r')
                    if not line or line.startswith('#'):
                        continue
                    self._parse_gff3_line(line, line_num)
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to read GFF3 file: {e}", self.file_path)

    def parse_bed(self) -> None:
        """Parse a flat exon table: chromosome, gene, start, end, strand."""
        try:
            with open_annotation(self.file_path) as f:
                next(f, None)  # header
                for line_num, line in enumerate(f, 2):
                    line = line.rstrip('\n\r')
                    if not line:
                        continue
                    fields = line.split('\t')
                    if len(fields) < 5:
                        self._skip(line_num, f"expected 5 columns, found {len(fields)}")
                        continue
                    chr_name, gene_id, start, end, strand = fields[:5]
                    self._add_exon(chr_name, gene_id, start, end, strand, line_num)
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to read BED file: {e}", self.file_path)

    def _parse_gff3_line(self, line: str, line_num: int) -> None:
        fields = line.split('\t')
        if len(fields) != 9:
            self._skip(line_num, f"expected 9 columns, found {len(fields)}")
            return

        attributes = parse_attributes(fields[ATTRIBUTES])
        feature = fields[TYPE]

        if self.dialect == Dialect.ENSEMBL:
            target_gene = self._resolve_ensembl(fields, attributes, line, line_num)
        elif feature == 'exon' and self.dialect == Dialect.GENCODE:
            target_gene = attributes.get('gene_id', '')
        elif feature == 'exon' and self.dialect == Dialect.REFSEQ:
            target_gene = refseq_gene_id(attributes)
        else:
            target_gene = ""

        if target_gene:
            self._add_exon(fields[SEQID], target_gene, fields[START], fields[END],
                           fields[STRAND], line_num, widen_single_base=True)

    def _resolve_ensembl(self, fields: List[str], attributes: Dict[str, str],
                         line: str, line_num: int) -> str:
        """Walk exon -> transcript -> gene; ENSEMBL prefixes ids with their type."""
        raw_id = attributes.get('ID', '')
        feature_id = raw_id.rsplit(':', 1)[-1]
        parent = attributes.get('Parent', '').rsplit(':', 1)[-1]

        if fields[TYPE] == 'gene' or 'gene:' in raw_id:
            if feature_id:
                self._recorded_genes.add(feature_id)
            return ""

        if parent and parent in self._recorded_genes:
            if feature_id and parent:
                self._transcript_to_gene[feature_id] = parent
            return ""

        if fields[TYPE] == 'exon':
            if parent not in self._transcript_to_gene:
                raise FormatError("cannot find grandparent for exon", self.file_path, line_num, line)
            return self._transcript_to_gene[parent]

        return ""

    def _add_exon(self, chr_name: str, gene_id: str, start: str, end: str,
                  strand: str, line_num: int, widen_single_base: bool = False) -> None:
        try:
            start, end = int(start), int(end)
            # a GFF3 feature with start == end covers one base
            if widen_single_base and start == end:
                end += 1
            exon = Interval(start, end, strand_from_char(strand[:1]))
        except ValueError as e:
            self._skip(line_num, str(e))
            return

        if self.fix_chr_names:
            chr_name = normalize_chr_name(chr_name)

        genes = self._buckets.setdefault(chr_name, {})
        gene = genes.get(gene_id)
        if gene is None:
            gene = genes[gene_id] = Gene(gene_id=gene_id, chromosome=chr_name)
        gene.add_exon(exon)
        gene.set_id(gene_id)
        self.exon_count += 1

    def _skip(self, line_num: int, reason: str) -> None:
        self.skipped_lines += 1
        logging.warning(f"Skipping line {line_num} of {self.file_path}: {reason}")


def load_annotation(file_path: str, normalize_chr_names: bool = False,
                    index: Optional[AnnotationIndex] = None) -> AnnotationIndex:
    """Load a GFF3 or BED annotation into a query-ready index."""
    return AnnotationLoader(file_path, normalize_chr_names).load(index)
