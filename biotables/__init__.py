"""Columnar readers for FASTQ, GFF3 and VCF files, plain, gzip or BGZF-compressed."""

__version__ = "0.1.0"
__all__ = ["__version__"]