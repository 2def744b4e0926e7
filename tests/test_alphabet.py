"""
Tests for hohmm.core.alphabet.
"""
import pytest
import numpy as np

from hohmm.core.alphabet import BINARY, DNA, DiscreteAlphabet
from hohmm.core.errors import ModelConfigurationError, WrongAlphabetError


class TestDiscreteAlphabet:
    """Construction, encoding and decoding."""

    def test_encode_decode(self):
        codes = DNA.encode('GATTACA')
        np.testing.assert_array_equal(codes, [2, 0, 3, 3, 0, 1, 0])
        assert DNA.decode(codes) == 'GATTACA'

    def test_size(self):
        assert DNA.size == 4
        assert len(BINARY) == 2

    def test_unknown_symbol(self):
        with pytest.raises(WrongAlphabetError):
            DNA.encode('ACGN')

    def test_duplicate_symbols(self):
        with pytest.raises(ModelConfigurationError):
            DiscreteAlphabet('AAB')

    def test_empty(self):
        with pytest.raises(ModelConfigurationError):
            DiscreteAlphabet('')

    def test_equality(self):
        assert DiscreteAlphabet('01') == BINARY
        assert DiscreteAlphabet('ACGT') != DNA  # no complement
        assert hash(DiscreteAlphabet('01')) == hash(BINARY)


class TestComplement:
    """Reverse strand codes."""

    def test_dna_complement(self):
        np.testing.assert_array_equal(DNA.complement_codes, [3, 2, 1, 0])

    def test_identity_without_complement(self):
        np.testing.assert_array_equal(BINARY.complement_codes, [0, 1])

    def test_complement_must_be_permutation(self):
        with pytest.raises(ModelConfigurationError):
            DiscreteAlphabet('ACGT', complement='TGCC')


class TestCheck:
    """Validation of integer code arrays."""

    def test_valid(self):
        out = BINARY.check([0, 1, 1])
        assert out.dtype == np.int64

    def test_out_of_range(self):
        with pytest.raises(WrongAlphabetError):
            BINARY.check([0, 2])

    def test_negative(self):
        with pytest.raises(WrongAlphabetError):
            BINARY.check(np.array([-1, 0]))

    def test_float_codes(self):
        with pytest.raises(WrongAlphabetError):
            BINARY.check(np.array([0.0, 1.0]))

    def test_empty(self):
        assert len(BINARY.check([])) == 0


class TestSerialization:
    """to_dict / from_dict / from_name."""

    def test_round_trip(self):
        assert DiscreteAlphabet.from_dict(DNA.to_dict()) == DNA

    def test_from_name(self):
        assert DiscreteAlphabet.from_name('dna') is DNA
        assert DiscreteAlphabet.from_name('BINARY') is BINARY
        assert DiscreteAlphabet.from_name('xyz').symbols == ['x', 'y', 'z']
