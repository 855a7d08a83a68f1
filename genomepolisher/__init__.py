# File: genomepolisher/__init__.py
# Location: genomepolisher/genomepolisher/__init__.py

"""
genomepolisher Package.

This package orchestrates iterative polishing of genome assemblies with
external long-read (Minimap2, Racon, Medaka) and short-read (BWA, Samtools,
Pilon) tools, with resume support based on stage output files.
"""

from .version import __version__
