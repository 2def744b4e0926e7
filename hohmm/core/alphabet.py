"""Discrete alphabets and symbol encoding."""

from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from hohmm.core.errors import ModelConfigurationError, WrongAlphabetError


class DiscreteAlphabet:
    """
    Ordered set of symbols, encoded as integer codes 0..size-1.

    An optional complement (same length as the symbols, e.g. 'TGCA' for
    'ACGT') defines the code used when a reverse-strand state scores a
    position.
    """

    def __init__(self, symbols: Union[str, Sequence[str]],
                 complement: Optional[Union[str, Sequence[str]]] = None):
        self.symbols = list(symbols)
        if len(self.symbols) == 0:
            raise ModelConfigurationError("An alphabet needs at least one symbol")
        if len(set(self.symbols)) != len(self.symbols):
            raise ModelConfigurationError(f"Duplicate symbols in alphabet: {self.symbols}")

        self._index = {s: i for i, s in enumerate(self.symbols)}

        if complement is None:
            self.complement = None
            self.complement_codes = np.arange(len(self.symbols))
        else:
            self.complement = list(complement)
            if sorted(self.complement) != sorted(self.symbols):
                raise ModelConfigurationError(
                    f"Complement {self.complement} is not a permutation of {self.symbols}"
                )
            self.complement_codes = np.array([self._index[s] for s in self.complement])

    @property
    def size(self) -> int:
        return len(self.symbols)

    def __len__(self) -> int:
        return len(self.symbols)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DiscreteAlphabet):
            return NotImplemented
        return self.symbols == other.symbols and self.complement == other.complement

    def __hash__(self):
        return hash((tuple(self.symbols), tuple(self.complement or ())))

    def __repr__(self) -> str:
        return f"DiscreteAlphabet({''.join(self.symbols)!r})"

    def encode(self, text: Union[str, Sequence[str]]) -> np.ndarray:
        """Encode a string (or symbol list) to an int array."""
        try:
            return np.array([self._index[s] for s in text], dtype=np.int64)
        except KeyError as e:
            raise WrongAlphabetError(
                f"Symbol {e.args[0]!r} is not in alphabet {''.join(self.symbols)!r}"
            ) from None

    def decode(self, codes: Sequence[int]) -> str:
        return ''.join(self.symbols[c] for c in self.check(codes))

    def check(self, codes) -> np.ndarray:
        """Return codes as an int array, raising WrongAlphabetError if out of range."""
        arr = np.asarray(codes)
        if arr.ndim != 1:
            arr = arr.ravel()
        if arr.size == 0:
            return arr.astype(np.int64)
        if not np.issubdtype(arr.dtype, np.integer):
            raise WrongAlphabetError(f"Expected integer codes, got dtype {arr.dtype}")
        if arr.min() < 0 or arr.max() >= self.size:
            raise WrongAlphabetError(
                f"Codes must lie in [0, {self.size}), got range [{arr.min()}, {arr.max()}]"
            )
        return arr.astype(np.int64)

    def to_dict(self) -> Dict[str, Any]:
        return {'symbols': self.symbols, 'complement': self.complement}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'DiscreteAlphabet':
        return cls(d['symbols'], d.get('complement'))

    @classmethod
    def from_name(cls, name: str) -> 'DiscreteAlphabet':
        """
        Build an alphabet from a CLI-style name.

        'dna' and 'binary' are predefined; any other string is taken as
        the list of its characters.
        """
        key = name.lower()
        if key == 'dna':
            return DNA
        if key == 'binary':
            return BINARY
        return cls(name)


DNA = DiscreteAlphabet('ACGT', complement='TGCA')
BINARY = DiscreteAlphabet('01')
