#!/usr/bin/env python3

"""
Test suite for the transcript mapping pipeline.

Unit tests covering:
- Intervals, genes and the annotation index
- Annotation loading for each GFF3 dialect and BED
- Read classification, ambiguity and strand handling
- Configuration management and validation
- The streaming pipeline, tagging and throughput reporting
"""
