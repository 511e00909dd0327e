"""
Archive input and output: compressed blocks, byte sources, the decoder, the encoder and FASTA/FASTQ text.
"""
from naflib.io.block import BlockInfo
from naflib.io.decoder import Decoder, DecoderState
from naflib.io.encoder import Encoder, EncoderState
from naflib.io.fasta import FastaReader, FastqReader, write_fasta, write_fastq

__all__ = ['BlockInfo', 'Decoder', 'DecoderState', 'Encoder', 'EncoderState', 'FastaReader', 'FastqReader',
           'write_fasta', 'write_fastq']
