#!/usr/bin/env python3

"""
Command-line interface for the transcript mapping pipeline.

Loads an exon annotation, tags every record of an alignment file with its
gene assignment, barcode and UMI, and writes the tagged BAM.
"""

import argparse
import sys
import logging

from transcript_mapping_pipeline.core.config import load_config
from transcript_mapping_pipeline.core.exceptions import PipelineError


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Assign aligned reads to genes and tag them with gene, barcode and UMI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic usage
  python pipeline_cli.py --annotation genes.gff3 --input aligned.bam --output tagged.bam

  # Cell barcode and UMI in the read name, chromosome names fixed to UCSC style
  python pipeline_cli.py --annotation genes.gff3 --input aligned.bam --output tagged.bam --barcode-length 16 --umi-length 10 --fix-chr-names
        """
    )

    # Input / output
    parser.add_argument(
        '--annotation',
        help='Exon annotation file (GFF3 from ENSEMBL, GENCODE or RefSeq, or BED)'
    )
    parser.add_argument(
        '--input',
        help='Input alignment file (BAM or SAM)'
    )
    parser.add_argument(
        '--output',
        help='Output BAM file'
    )

    # Optional parameters
    parser.add_argument(
        '--fix-chr-names',
        action='store_true',
        default=None,
        help='Prefix bare chromosome names in the annotation with "chr"'
    )
    parser.add_argument(
        '--no-match-strand',
        dest='match_strand',
        action='store_false',
        default=None,
        help='Ignore strand when matching reads to exons'
    )
    parser.add_argument('--map-tag', help='Tag for the mapping result (default: YE)')
    parser.add_argument('--gene-tag', help='Tag for the gene id (default: GE)')
    parser.add_argument('--cell-barcode-tag', help='Tag for the cell barcode (default: BC)')
    parser.add_argument('--molecular-barcode-tag', help='Tag for the UMI (default: OX)')
    parser.add_argument(
        '--barcode-length',
        type=int,
        help='Cell barcode length at the start of the read name (default: 0, disabled)'
    )
    parser.add_argument(
        '--umi-length',
        type=int,
        help='UMI length after the barcode and one separator (default: 0, disabled)'
    )
    parser.add_argument(
        '--report-interval',
        type=float,
        help='Seconds between progress reports (default: 180)'
    )
    parser.add_argument(
        '--memory-check-interval',
        type=int,
        help='Check memory usage against the limit every N reads (default: 1000000)'
    )
    parser.add_argument(
        '--config',
        help='Configuration file (JSON or YAML)'
    )
    parser.add_argument(
        '--log-file',
        help='Also write the log to this file'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    return parser


# argparse destination -> PipelineConfig field
CLI_OVERRIDES = {
    'annotation': 'annotation_file',
    'input': 'input_file',
    'output': 'output_file',
    'fix_chr_names': 'fix_chr_names',
    'match_strand': 'match_strand',
    'map_tag': 'map_tag',
    'gene_tag': 'gene_tag',
    'cell_barcode_tag': 'cell_barcode_tag',
    'molecular_barcode_tag': 'molecular_barcode_tag',
    'barcode_length': 'barcode_length',
    'umi_length': 'umi_length',
    'report_interval': 'report_interval_seconds',
    'memory_check_interval': 'memory_check_interval',
    'log_file': 'log_file',
}


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Set up logging
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        # Load configuration
        config = load_config(config_path=args.config, use_env=True)

        # Override config with command line arguments
        for arg_name, field_name in CLI_OVERRIDES.items():
            value = getattr(args, arg_name)
            if value is not None:
                setattr(config, field_name, value)
        if args.log_level == 'DEBUG':
            config.debug_mode = True

        # Re-validate after CLI overrides.
        config.validate()

        for field_name in ('annotation_file', 'input_file', 'output_file'):
            if not getattr(config, field_name):
                parser.error(f"{field_name} is required (command line or configuration)")

        logger.info("Starting transcript mapping pipeline...")
        logger.info(f"Annotation: {config.annotation_file}")
        logger.info(f"Match strand: {config.match_strand}")
        logger.info(f"Barcode length: {config.barcode_length}, UMI length: {config.umi_length}")

        # Initialize and run the pipeline
        from transcript_mapping_pipeline import TranscriptMappingPipeline

        pipeline = TranscriptMappingPipeline(config)
        pipeline.load_annotation()
        pipeline.run_files()

        logger.info("Pipeline completed successfully!")
        return 0

    except PipelineError as e:
        logger.error(f"Pipeline error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.debug("Full traceback:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
