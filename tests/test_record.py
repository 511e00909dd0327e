import numpy as np
import pytest
from naflib import Record
from naflib.core.interval import IntervalBatch


class TestRecordInit:
    def test_length_from_sequence(self):
        rec = Record(b'seq1', sequence=b'ACGT')
        assert len(rec) == 4
        assert rec.length == 4
        assert not rec.has_length

    def test_length_from_quality(self):
        assert Record(quality=b'III').length == 3

    def test_explicit_length(self):
        rec = Record(b'seq1', length=10)
        assert rec.length == 10
        assert rec.has_length
        assert rec.sequence is None

    def test_no_length(self):
        rec = Record(b'seq1')
        assert rec.length is None
        assert len(rec) == 0

    def test_negative_length(self):
        with pytest.raises(ValueError, match="non-negative"):
            Record(length=-1)

    def test_str_fields(self):
        rec = Record('seq1', 'a comment', 'ACGT', 'IIII')
        assert rec.id == b'seq1'
        assert rec.comment == b'a comment'
        assert rec.sequence == b'ACGT'
        assert rec.quality == b'IIII'

    def test_mask_is_normalized(self):
        rec = Record(sequence=b'ACGTACGT', mask=[(5, 8), (0, 2), (1, 3)])
        assert isinstance(rec.mask, IntervalBatch)
        assert rec.mask == [(0, 3), (5, 8)]


class TestRecordEquality:
    def test_equal(self):
        assert Record(b'a', sequence=b'AC', mask=[(0, 1)]) == Record(b'a', sequence=b'AC', mask=[(0, 1)], length=2)

    def test_mask_order_does_not_matter(self):
        assert Record(mask=[(5, 8), (0, 2)]) == Record(mask=[(0, 2), (5, 8)])

    def test_missing_mask_differs_from_empty_mask(self):
        assert Record(b'a', sequence=b'AC') != Record(b'a', sequence=b'AC', mask=[])

    def test_other_types(self):
        assert Record(b'a') != b'a'


class TestRecordFormatting:
    def test_name(self):
        assert Record(b'seq1', b'desc').name() == b'seq1 desc'
        assert Record(b'seq1', b'desc').name(b'|') == b'seq1|desc'
        assert Record(b'seq1').name() == b'seq1'
        assert Record(b'seq1', b'').name() == b'seq1'
        assert Record(comment=b'desc').name() == b'desc'
        assert Record().name() is None

    def test_masked_sequence(self):
        assert Record(sequence=b'ACGT', mask=[(1, 3)]).masked_sequence() == b'AcgT'
        assert Record(sequence=b'ACGT').masked_sequence() == b'ACGT'

    def test_fasta(self):
        rec = Record(b'seq1', b'desc', b'ACGTA')
        assert rec.format_fasta() == b'>seq1 desc\nACGTA\n'
        assert rec.format_fasta(line_length=2) == b'>seq1 desc\nAC\nGT\nA\n'

    def test_fasta_empty_sequence(self):
        assert Record(b'seq2', sequence=b'').format_fasta(60) == b'>seq2\n\n'

    def test_fastq(self):
        assert Record(b'r1', sequence=b'ACGT', quality=b'II!!').format_fastq() == b'@r1\nACGT\n+\nII!!\n'
        with pytest.raises(ValueError, match="without quality"):
            Record(b'r1', sequence=b'ACGT').format_fastq()

    def test_phred(self):
        np.testing.assert_array_equal(Record(quality=b'I!+').phred(), [40, 0, 10])
        assert Record(b'a').phred() is None
