import io

import pytest
from naflib import Record, Encoder, Decoder
from naflib.errors import ParserError
from naflib.io.fasta import FastaReader, FastqReader, write_fasta, write_fastq

FASTA = b'>seq1 first record\nACGT\nacgt\n>seq2\n\n>seq3 x\r\nNN'
FASTQ = b'@r1 desc\nACGT\n+\nIIII\n\n@r2\nAC\n+r2\n!!'


class SmallFastaReader(FastaReader):
    _CHUNK_SIZE = 3


class SmallFastqReader(FastqReader):
    _CHUNK_SIZE = 5


class TestFastaReader:
    @pytest.mark.parametrize('reader', [FastaReader, SmallFastaReader])
    def test_records(self, reader):
        records = list(reader(io.BytesIO(FASTA)))
        assert records == [Record(b'seq1', b'first record', b'ACGTacgt'), Record(b'seq2', b'', b''),
                           Record(b'seq3', b'x', b'NN')]

    def test_separator(self):
        record = next(FastaReader(io.BytesIO(b'>seq1|desc\nAC\n'), separator=b'|'))
        assert (record.id, record.comment) == (b'seq1', b'desc')

    def test_header_without_newline(self):
        assert list(FastaReader(io.BytesIO(b'>seq1\nAC\n>seq2'))) == [Record(b'seq1', b'', b'AC'),
                                                                        Record(b'seq2', b'', b'')]

    def test_empty(self):
        assert list(FastaReader(io.BytesIO(b''))) == []

    def test_data_before_header(self):
        with pytest.raises(ParserError, match="expected '>'"):
            list(FastaReader(io.BytesIO(b'ACGT\n>seq1\nAC\n')))


class TestFastqReader:
    @pytest.mark.parametrize('reader', [FastqReader, SmallFastqReader])
    def test_records(self, reader):
        records = list(reader(io.BytesIO(FASTQ)))
        assert records == [Record(b'r1', b'desc', b'ACGT', b'IIII'), Record(b'r2', b'', b'AC', b'!!')]

    def test_bad_header(self):
        with pytest.raises(ParserError, match="expected '@'"):
            list(FastqReader(io.BytesIO(b'>r1\nAC\n+\nII\n')))

    def test_bad_separator(self):
        with pytest.raises(ParserError, match="line 3: expected '\\+'"):
            list(FastqReader(io.BytesIO(b'@r1\nAC\n-\nII\n')))

    def test_quality_length(self):
        with pytest.raises(ParserError, match="expected 2"):
            list(FastqReader(io.BytesIO(b'@r1\nAC\n+\nI\n')))

    def test_truncated(self):
        with pytest.raises(ParserError, match="Truncated"):
            list(FastqReader(io.BytesIO(b'@r1\nAC\n+\nII\n@r2\nAC\n')))


class TestWriters:
    def test_write_fasta(self):
        out = io.BytesIO()
        assert write_fasta([Record(b's1', b'd', b'ACGTACG'), Record(b's2', sequence=b'A')], out, 4) == 2
        assert out.getvalue() == b'>s1 d\nACGT\nACG\n>s2\nA\n'

    def test_write_fastq(self):
        out = io.BytesIO()
        assert write_fastq([Record(b'r1', b'', b'AC', b'II')], out) == 1
        assert out.getvalue() == b'@r1\nAC\n+\nII\n'


class TestArchiveInterop:
    def test_fasta_roundtrip(self):
        text = b'>s1 d\nACGTA\nCG\n>s2\nac\n>s3 masked tail\nACGTAcgtac\nNNnn\n'
        buf = io.BytesIO()
        with Encoder(buf, id=True, comment=True, sequence=True, mask=True, line_length=5) as encoder:
            assert encoder.write_many(FastaReader(io.BytesIO(text))) == 3
        buf.seek(0)
        out = io.BytesIO()
        with Decoder(buf) as decoder:
            write_fasta(decoder, out, decoder.header.line_length, decoder.header.name_separator)
        assert out.getvalue() == b'>s1 d\nACGTA\nCG\n>s2\nac\n>s3 masked tail\nACGTA\ncgtac\nNNnn\n'

    def test_fastq_roundtrip(self):
        buf = io.BytesIO()
        with Encoder(buf, id=True, comment=True, sequence=True, quality=True) as encoder:
            encoder.write_many(FastqReader(io.BytesIO(FASTQ)))
        buf.seek(0)
        out = io.BytesIO()
        with Decoder(buf) as decoder:
            write_fastq(decoder, out)
        assert out.getvalue() == b'@r1 desc\nACGT\n+\nIIII\n@r2\nAC\n+\n!!\n'


class TestLineEndings:
    @pytest.mark.parametrize('chunk_size', [1, 2, 65536])
    def test_crlf(self, chunk_size):
        class Reader(FastaReader):
            _CHUNK_SIZE = chunk_size
        text = b'>s1 d\r\nAC\r\nGT\r\n>s2\r\nA'
        assert list(Reader(io.BytesIO(text))) == [Record(b's1', b'd', b'ACGT'), Record(b's2', b'', b'A')]
