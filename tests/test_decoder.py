import io
import warnings

import numpy as np
import pytest
import naflib
from naflib import Record, Encoder, Decoder, DecoderState, Flag, SequenceType, FormatVersion, NafWarning
from naflib.errors import (BadMagic, AlreadyClosed, StreamError, TruncatedArchive, DecompressionError,
                           InvalidSymbol)


class Pipe:
    """A sequential, non-seekable byte source."""
    def __init__(self, data: bytes): self._data = io.BytesIO(data)
    def read(self, n: int = -1) -> bytes: return self._data.read(n)


class Trickle(Pipe):
    """A sequential source returning at most two bytes per read, like a slow socket."""
    def read(self, n: int = -1) -> bytes: return self._data.read(2 if n < 0 else min(n, 2))


def _archive(records, sequence_type=SequenceType.DNA, **options) -> bytes:
    buf = io.BytesIO()
    with Encoder(buf, sequence_type, **options) as encoder:
        encoder.write_many(records)
    return buf.getvalue()


def _reads(n: int = 100, seed: int = 0) -> list[Record]:
    rng = np.random.default_rng(seed)
    records = []
    for i in range(n):
        length = int(rng.integers(0, 150))
        seq = rng.choice(np.frombuffer(b'ACGT', dtype=np.uint8), length).astype(np.uint8).tobytes()
        qual = rng.integers(33, 75, length, dtype=np.uint8).tobytes()
        records.append(Record(f'read{i}', f'sample={i % 3}', seq, qual))
    return records


FULL = dict(title='reads', id=True, comment=True, sequence=True, quality=True)


class TestDecoderBasics:
    def test_two_records(self):
        data = _archive([Record(b'seq1', sequence=b'ACGT'), Record(b'seq2', sequence=b'')], id=True, sequence=True)
        with Decoder(io.BytesIO(data)) as decoder:
            assert decoder.header.flags == Flag.ID | Flag.LENGTH | Flag.SEQUENCE
            assert len(decoder) == 2
            assert decoder.state is DecoderState.READY
            records = list(decoder)
            assert decoder.state is DecoderState.EXHAUSTED
            assert decoder.records_read == 2
        assert records == [Record(b'seq1', sequence=b'ACGT'), Record(b'seq2', sequence=b'')]
        assert records[0].comment is None
        assert records[0].mask is None
        assert decoder.state is DecoderState.CLOSED

    def test_roundtrip_all_fields(self):
        records = _reads()
        data = _archive(records, **FULL)
        with Decoder(io.BytesIO(data)) as decoder:
            assert decoder.title == b'reads'
            assert list(decoder) == records

    def test_zero_records(self):
        with Decoder(io.BytesIO(_archive([], id=True, sequence=True))) as decoder:
            assert decoder.state is DecoderState.EXHAUSTED
            assert list(decoder) == []

    def test_from_path(self, tmp_path):
        path = tmp_path / 'reads.naf'
        with naflib.open(path, 'w', id=True, sequence=True, line_length=70) as archive:
            archive.write(Record(b'seq1', sequence=b'ACGT'))
        with naflib.open(path) as archive:
            assert archive.header.line_length == 70
            assert [r.sequence for r in archive] == [b'ACGT']

    def test_bad_mode(self):
        with pytest.raises(ValueError, match="mode"):
            naflib.open('reads.naf', 'a')

    def test_archive_inside_larger_file(self):
        handle = io.BytesIO(b'xxxxx' + _archive([Record(b'seq1', sequence=b'ACGT')], id=True, sequence=True))
        handle.seek(5)
        with Decoder(handle) as decoder:
            assert [r.id for r in decoder] == [b'seq1']

    def test_sizes(self):
        data = _archive(_reads(10), **FULL)
        with Decoder(io.BytesIO(data)) as decoder:
            assert [b.kind for b in decoder.blocks] == [Flag.TITLE, Flag.ID, Flag.COMMENT, Flag.LENGTH,
                                                        Flag.SEQUENCE, Flag.QUALITY]
            lines = decoder.sizes().splitlines()
        assert lines[0].startswith('title: ')
        assert lines[-1].startswith('quality: ')


class TestSelectiveDecoding:
    def test_ids_only(self):
        records = _reads(20)
        with Decoder(io.BytesIO(_archive(records, **FULL)), comment=False, length=False, sequence=False,
                     quality=False) as decoder:
            decoded = list(decoder)
        assert [r.id for r in decoded] == [r.id for r in records]
        assert all(r.sequence is None and r.quality is None and r.comment is None for r in decoded)
        assert all(r.length is None for r in decoded)

    def test_sequence_implies_length(self):
        with Decoder(io.BytesIO(_archive(_reads(5), **FULL)), length=False, quality=False) as decoder:
            assert all(r.length == len(r.sequence) for r in decoder)

    def test_field_absent_from_archive(self):
        data = _archive([Record(b'seq1', sequence=b'ACGT')], id=True, sequence=True)
        with Decoder(io.BytesIO(data), quality=True, mask=True) as decoder:
            record = next(decoder)
        assert record.quality is None
        assert record.mask is None

    def test_corrupt_unrequested_block(self):
        data = _archive([Record(b'seq1', sequence=b'ACGT' * 50), Record(b'seq2', sequence=b'GATTACA')],
                        title='genomes', id=True, sequence=True)
        with Decoder(io.BytesIO(data)) as decoder:
            info = next(b for b in decoder.blocks if b.kind == Flag.SEQUENCE)
        corrupt = data[:info.offset] + b'\0\0\0\0' + data[info.offset + 4:]

        with Decoder(io.BytesIO(corrupt), id=False, sequence=False) as decoder:
            assert decoder.title == b'genomes'
            assert [r.length for r in decoder] == [200, 7]

        decoder = Decoder(io.BytesIO(corrupt))
        with pytest.raises(DecompressionError) as error:
            next(decoder)
        assert error.value.stream == 'sequence'
        assert decoder.state is DecoderState.CLOSED
        with pytest.raises(AlreadyClosed):
            next(decoder)


class TestTruncation:
    def _truncated(self) -> bytes:
        data = _archive(_reads(), **FULL)
        with Decoder(io.BytesIO(data)) as decoder:
            info = decoder.blocks[-1]
        assert info.kind == Flag.QUALITY
        return data[:info.offset + info.compressed_size // 2]

    def test_open_succeeds(self):
        with Decoder(io.BytesIO(self._truncated())) as decoder:
            assert len(decoder) == 100

    def test_decode_with_quality_fails(self):
        decoder = Decoder(io.BytesIO(self._truncated()))
        decoded = []
        with pytest.raises(StreamError):
            for record in decoder:
                decoded.append(record)
        assert len(decoded) < 100
        assert decoder.state is DecoderState.CLOSED

    def test_decode_without_quality(self):
        records = _reads()
        with Decoder(io.BytesIO(self._truncated()), quality=False) as decoder:
            assert [r.sequence for r in decoder] == [r.sequence for r in records]

    def test_truncated_non_seekable(self):
        with Decoder(Pipe(self._truncated()), quality=False) as decoder:
            assert len(list(decoder)) == 100
        with pytest.raises(StreamError):
            with Decoder(Pipe(self._truncated())) as decoder:
                for _ in decoder: pass

    def test_missing_block_prefix(self):
        data = _archive([Record(b'seq1', sequence=b'ACGT')], id=True, sequence=True)
        with Decoder(io.BytesIO(data)) as decoder:
            info = decoder.blocks[-1]
        with pytest.raises(TruncatedArchive):
            Decoder(io.BytesIO(data[:info.offset - 2]))

    def test_fewer_records_than_declared(self):
        data = bytearray(_archive([Record(b'seq1'), Record(b'seq2')], id=True))
        assert data[8] == 2
        data[8] = 3
        decoder = Decoder(io.BytesIO(bytes(data)))
        assert next(decoder).id == b'seq1'
        assert next(decoder).id == b'seq2'
        with pytest.raises(TruncatedArchive) as error:
            next(decoder)
        assert (error.value.stream, error.value.record) == ('id', 2)

    def test_more_records_than_declared(self):
        data = bytearray(_archive([Record(b'seq1'), Record(b'seq2')], id=True))
        data[8] = 1
        with Decoder(io.BytesIO(bytes(data))) as decoder:
            with pytest.warns(NafWarning, match="past record 1"):
                assert [r.id for r in decoder] == [b'seq1']

    def test_block_smaller_than_declared(self):
        data = bytearray(_archive([Record(b'seq1'), Record(b'seq2')], id=True))
        assert data[9] == 10  # seq1\0seq2\0
        data[9] = 11
        decoder = Decoder(io.BytesIO(bytes(data)))
        assert next(decoder).id == b'seq1'
        with pytest.raises(DecompressionError, match="expected 11") as error:
            next(decoder)
        assert error.value.stream == 'id'
        assert decoder.state is DecoderState.CLOSED


class TestSources:
    def test_non_seekable(self):
        records = _reads(30)
        with Decoder(Pipe(_archive(records, **FULL))) as decoder:
            assert decoder.title == b'reads'
            assert list(decoder) == records

    def test_non_seekable_selective(self):
        records = _reads(30)
        with Decoder(Pipe(_archive(records, **FULL)), sequence=False, quality=False,
                     spool_size=64) as decoder:
            assert [(r.id, r.length) for r in decoder] == [(r.id, r.length) for r in records]

    def test_short_reads(self):
        records = _reads(5)
        with Decoder(Trickle(_archive(records, **FULL))) as decoder:
            assert decoder.title == b'reads'
            assert list(decoder) == records

    def test_path_closed_when_exhausted(self, tmp_path):
        path = tmp_path / 'reads.naf'
        path.write_bytes(_archive([Record(b'seq1'), Record(b'seq2')], id=True))
        decoder = Decoder(path)
        assert next(decoder).id == b'seq1'
        assert not decoder._source._handle.closed
        assert next(decoder).id == b'seq2'
        assert decoder.state is DecoderState.EXHAUSTED
        assert decoder._source._handle.closed

    def test_handle_left_open(self):
        handle = io.BytesIO(_archive([Record(b'seq1')], id=True))
        with Decoder(handle) as decoder:
            list(decoder)
        assert not handle.closed

    def test_empty_source(self):
        with pytest.raises(BadMagic):
            Decoder(io.BytesIO(b''))

    def test_not_an_archive(self):
        with pytest.raises(BadMagic):
            Decoder(io.BytesIO(b'>seq1\nACGT\n'))

    def test_trailing_bytes(self):
        data = _archive([Record(b'seq1')], id=True)
        with pytest.warns(NafWarning, match="trailing"):
            Decoder(io.BytesIO(data + b'junk')).close()
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            Decoder(io.BytesIO(data)).close()


class TestVersion1:
    def test_roundtrip(self):
        records = [Record(b'seq1', b'first', b'ACGT'), Record(b'seq2', b'', b'GG'), Record(b'seq3', b'x', b'')]
        data = _archive(records, id=True, comment=True, sequence=True, format_version=FormatVersion.V1)
        assert data[3] == 1
        with Decoder(io.BytesIO(data)) as decoder:
            assert decoder.header.format_version is FormatVersion.V1
            assert len(decoder) == 3
            assert list(decoder) == records

    def test_count_without_requested_fields(self):
        data = _archive([Record(b'seq1', sequence=b'A')] * 3, id=True, sequence=True,
                        format_version=FormatVersion.V1)
        with Decoder(io.BytesIO(data), id=False, length=False, sequence=False) as decoder:
            decoded = list(decoder)
        assert len(decoded) == 3
        assert all(r.id is None and r.length is None for r in decoded)


class TestMasks:
    def test_mask_from_lower_case(self):
        data = _archive([Record(b'r1', sequence=b'ACgtNNnn'), Record(b'r2', sequence=b'acgt')],
                        id=True, sequence=True, mask=True)
        with Decoder(io.BytesIO(data)) as decoder:
            r1, r2 = decoder
        assert r1.sequence == b'ACGTNNNN'
        assert r1.mask == [(2, 4), (6, 8)]
        assert r1.masked_sequence() == b'ACgtNNnn'
        assert r2.mask == [(0, 4)]

    def test_explicit_mask(self):
        record = Record(b'r1', sequence=b'ACGTACGT', mask=[(0, 1), (7, 8)])
        with Decoder(io.BytesIO(_archive([record], id=True, sequence=True, mask=True))) as decoder:
            assert next(decoder) == record

    def test_mask_without_sequence(self):
        records = [Record(mask=[(1, 2)], length=5), Record(mask=[], length=0), Record(mask=[(0, 3)], length=3)]
        with Decoder(io.BytesIO(_archive(records, mask=True))) as decoder:
            assert list(decoder) == records

    def test_mask_only_decode(self):
        data = _archive([Record(b'r1', sequence=b'ACgt')], id=True, sequence=True, mask=True)
        with Decoder(io.BytesIO(data), id=False, sequence=False) as decoder:
            record = next(decoder)
        assert record.sequence is None
        assert record.length == 4
        assert record.mask == [(2, 4)]


class TestSequenceTypes:
    def test_rna(self):
        record = Record(b'r', sequence=b'ACGU')
        with Decoder(io.BytesIO(_archive([record], SequenceType.RNA, id=True, sequence=True))) as decoder:
            assert decoder.header.sequence_type is SequenceType.RNA
            assert next(decoder) == record

    def test_protein(self):
        records = [Record(b'p1', sequence=b'MKVLA*'), Record(b'p2', sequence=b'mkv')]
        with Decoder(io.BytesIO(_archive(records, SequenceType.PROTEIN, id=True, sequence=True))) as decoder:
            assert list(decoder) == records

    def test_text(self):
        record = Record(b't', sequence=bytes(range(256)))
        with Decoder(io.BytesIO(_archive([record], SequenceType.TEXT, id=True, sequence=True))) as decoder:
            assert next(decoder) == record

    def test_invalid_symbol_in_archive(self):
        data = _archive([Record(b'p1', sequence=b'MKV'), Record(b'p2', sequence=b'1A')], SequenceType.TEXT,
                        id=True, sequence=True)
        # Re-label the text archive as protein: '1' is not a protein symbol
        data = data[:5] + bytes([SequenceType.PROTEIN]) + data[6:]
        decoder = Decoder(io.BytesIO(data))
        assert next(decoder).sequence == b'MKV'
        with pytest.raises(InvalidSymbol) as error:
            next(decoder)
        assert (error.value.symbol, error.value.offset, error.value.record) == (ord('1'), 3, 1)
