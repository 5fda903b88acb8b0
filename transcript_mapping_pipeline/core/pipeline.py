#!/usr/bin/env python3

"""
Main pipeline class for transcript mapping.

Streams alignment records, classifies each against the annotation index,
moves barcode and UMI from the read name into tags, and writes the tagged
records out while a background reporter logs throughput.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

import pysam

from .config import PipelineConfig
from .data_structures import AnnotationIndex
from .exceptions import ConsistencyError, PipelineIOError
from .parsers import load_annotation
from .processors import MappingCode, MappingResult, ReadClassifier, ReadNameLayout
from ..utils.performance_monitor import PerformanceMonitor, ProgressCounter, ThroughputReporter


SUMMARY_LABELS = {
    MappingCode.EXON: "unique map to exon",
    MappingCode.AMBIGUOUS: "ambiguous map to multiple exon",
    MappingCode.INTRON: "map to intron",
    MappingCode.NOT_MAPPED: "not mapped",
    MappingCode.UNALIGNED: "unaligned",
}


@dataclass
class MappingStatistics:
    """Per-code read counts of one pipeline run."""
    total: int = 0
    counts: Dict[MappingCode, int] = field(default_factory=lambda: {code: 0 for code in MappingCode})
    short_read_names: int = 0

    def record(self, code: MappingCode) -> None:
        self.total += 1
        self.counts[code] += 1

    @property
    def unaligned(self) -> int:
        return self.counts[MappingCode.UNALIGNED]

    def percentage(self, code: MappingCode) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * self.counts[code] / self.total

    def to_dict(self) -> Dict[str, int]:
        summary = {code.name.lower(): count for code, count in self.counts.items()}
        summary["total"] = self.total
        summary["short_read_names"] = self.short_read_names
        return summary

    def log_summary(self) -> None:
        logging.info(f"\tnumber of read processed: {self.total}")
        for code in MappingCode:
            logging.info(f"\t{SUMMARY_LABELS[code]}: {self.counts[code]}({self.percentage(code):.2f}%)")
        if self.short_read_names:
            logging.warning(f"\tread names too short for barcode/UMI layout: {self.short_read_names}")


class TranscriptMappingPipeline:
    """Main pipeline class that tags alignment records with their gene assignment."""

    def __init__(self, config: PipelineConfig, index: Optional[AnnotationIndex] = None):
        self.config = config
        self.index = index
        self.monitor = PerformanceMonitor(
            memory_limit_mb=config.memory_limit_mb,
            enable_memory_monitoring=config.enable_memory_monitoring
        )
        self.layout = ReadNameLayout(config.barcode_length, config.umi_length)
        self.classifier: Optional[ReadClassifier] = None
        self.statistics = MappingStatistics()
        self.counter = ProgressCounter()

        if config.log_file:
            self._setup_pipeline_logging(config.log_file)

    def _setup_pipeline_logging(self, log_file: str) -> None:
        """Add a file handler to the root logger."""
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        ))

        root_logger = logging.getLogger()
        root_logger.addHandler(file_handler)

        if self.config.debug_mode:
            root_logger.setLevel(logging.DEBUG)

    def load_annotation(self, annotation_file: Optional[str] = None,
                        merge: bool = False) -> AnnotationIndex:
        """
        Build the annotation index from the configured annotation file.

        The current index is replaced unless ``merge`` is set, in which case
        the genes of the file are added to it.
        """
        annotation_file = annotation_file or self.config.annotation_file
        target = self.index if merge else None
        with self.monitor.phase_context("annotation_loading") as metrics:
            self.index = load_annotation(annotation_file, self.config.fix_chr_names, target)
            metrics.operations_count = self.index.gene_count
        self.index.log_summary()
        return self.index

    def check_chromosomes(self, references: Iterable[str]) -> None:
        """Fail unless the alignment header shares at least one chromosome with the annotation."""
        found_any = False
        for chromosome in references:
            if chromosome in self.index:
                found_any = True
            else:
                logging.info(f"{chromosome} not found in exon annotation.")

        if not found_any:
            raise ConsistencyError("The annotation and alignment file contain different chromosomes.")

    def tag_record(self, record: pysam.AlignedSegment) -> MappingResult:
        """Classify one record and attach the configured tags to it."""
        config = self.config
        if self.classifier is None:
            self.classifier = ReadClassifier(self.index, config.match_strand)

        if record.is_unmapped:
            result = MappingResult(MappingCode.UNALIGNED)
        elif record.reference_name not in self.index:
            result = MappingResult(MappingCode.NOT_MAPPED)
        else:
            result = self.classifier.classify_segment(record)
            if result.value <= 0:
                record.set_tag(config.gene_tag, result.gene_id, value_type='Z')

        read_name = record.query_name or ""
        if not self.layout.fits(read_name):
            self.statistics.short_read_names += 1

        barcode, umi = self.layout.parse(read_name)
        if barcode is not None:
            record.set_tag(config.cell_barcode_tag, barcode, value_type='Z')
        if umi is not None:
            record.set_tag(config.molecular_barcode_tag, umi, value_type='Z')

        record.set_tag(config.map_tag, result.value, value_type='i')
        return result

    def run(self, input_stream, output_stream) -> MappingStatistics:
        """
        Tag every record of an alignment stream.

        Args:
            input_stream: Opened alignment input exposing ``references`` and
                iterating pysam records
            output_stream: Opened alignment output exposing ``write(record)``

        Returns:
            MappingStatistics of the run
        """
        if self.index is None:
            self.load_annotation()

        self.check_chromosomes(input_stream.references)
        self.classifier = ReadClassifier(self.index, self.config.match_strand)
        self.statistics = MappingStatistics()
        self.counter = ProgressCounter()

        reporter = ThroughputReporter(self.counter, interval=self.config.report_interval_seconds)
        logging.info(f"Updating progress every {self.config.report_interval_seconds:g} seconds...")

        with self.monitor.phase_context("read_tagging") as metrics:
            reporter.start()
            try:
                for record in input_stream:
                    processed = self.counter.increment()
                    if processed % self.config.memory_check_interval == 0:
                        self.monitor.check_memory_limit()
                    result = self.tag_record(record)
                    self.statistics.record(result.code)
                    self._write(output_stream, record)
            finally:
                reporter.stop()
            metrics.operations_count = self.statistics.total

        self.statistics.log_summary()
        self.monitor.log_performance_report()
        return self.statistics

    def _write(self, output_stream, record: pysam.AlignedSegment) -> None:
        try:
            output_stream.write(record)
        except OSError as e:
            raise PipelineIOError(f"fail to write the bam file: {e}", record.query_name or "") from e

    def run_files(self, input_file: Optional[str] = None,
                  output_file: Optional[str] = None) -> MappingStatistics:
        """Open the input alignment file, tag it, and write a BAM with the same header."""
        input_file = input_file or self.config.input_file
        output_file = output_file or self.config.output_file

        if not input_file or not os.path.exists(input_file):
            raise PipelineIOError(f"Alignment file not found: {input_file}")

        logging.info(f"Input alignment: {input_file}")
        logging.info(f"Output alignment: {output_file}")

        try:
            inbam = pysam.AlignmentFile(input_file, "r", check_sq=False)
        except (OSError, ValueError) as e:
            raise PipelineIOError(f"Failed to open alignment file {input_file}: {e}") from e

        with inbam:
            try:
                outbam = pysam.AlignmentFile(output_file, "wb", template=inbam)
            except (OSError, ValueError) as e:
                raise PipelineIOError(f"Failed to open output file {output_file}: {e}") from e
            with outbam:
                return self.run(inbam, outbam)
