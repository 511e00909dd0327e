"""
Containers for the records stored in Nucleotide Archive Format files.
"""
from naflib.containers.record import Record

__all__ = ['Record']
