"""Canonical DNS name handling for zone walking.

Provides :class:`DomainName` and the operations the walker is built on:
normalisation, RFC 4034 §6.1 canonical ordering, and the "next possible name"
increment used to build probe points.

Names are sequences of raw octet labels.  Comparison folds ASCII ``A-Z`` to
``a-z`` and then compares octets; no locale or Unicode collation is involved,
since wire-format labels are arbitrary bytes and not text.  Presentation
format is parsed and rendered by dnspython, so internationalised input is
converted to its IDNA (``xn--``) form.
"""

from __future__ import annotations

import re
from functools import total_ordering
from typing import Iterable, List, Tuple, Union

import dns.exception
import dns.name

from zonewalker.core.errors import InvalidNameError, NameSpaceExhaustedError

MAX_LABEL_LENGTH = 63
MAX_NAME_LENGTH = 255

# One label of presentation text: escaped characters or anything but a dot
_LABEL_TEXT = re.compile(r"(?:\\.|[^.\\]|\\$)+")
_LABEL_BYTES = re.compile(rb"(?:\\.|[^.\\]|\\$)+")


@total_ordering
class DomainName:
    """A fully-qualified domain name.

    Labels are stored left to right (least significant first) and always end
    with the empty root label.  Equality, hashing and ordering are all
    case-insensitive and follow canonical DNSSEC order, so ``sorted()`` on a
    list of names gives zone order.

    Example::

        >>> sorted([normalize("b.example"), normalize("example"), normalize("A.example")])
        [DomainName('example.'), DomainName('A.example.'), DomainName('b.example.')]
    """

    __slots__ = ("labels", "_key")

    def __init__(self, labels: Iterable[bytes]) -> None:
        self.labels: Tuple[bytes, ...] = tuple(bytes(label) for label in labels)
        _check_labels(self.labels)
        self._key = canonical_key(self)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return len(self.labels) == 1

    @property
    def wire_length(self) -> int:
        """Length of the name in uncompressed wire format."""
        return sum(len(label) + 1 for label in self.labels)

    def parent(self) -> "DomainName":
        """Return the name with its first label removed."""
        if self.is_root:
            raise InvalidNameError("the root name has no parent")
        return DomainName(self.labels[1:])

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def to_text(self, omit_final_dot: bool = False) -> str:
        """Render the name in RFC 1035 presentation format.

        Args:
            omit_final_dot: Drop the trailing ``.`` of the root label.

        Returns:
            Text form, with non-printable octets escaped as ``\\DDD``.
        """
        if self.is_root:
            return "" if omit_final_dot else "."
        return dns.name.Name(self.labels).to_text(omit_final_dot=omit_final_dot)

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"DomainName({self.to_text()!r})"

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DomainName):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "DomainName") -> bool:
        if not isinstance(other, DomainName):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)


NameLike = Union[str, bytes, DomainName]


def _check_labels(labels: Tuple[bytes, ...]) -> None:
    if not labels or labels[-1] != b"":
        raise InvalidNameError("name must end with the root label")
    for label in labels[:-1]:
        if not label:
            raise InvalidNameError("empty label inside name")
        if len(label) > MAX_LABEL_LENGTH:
            raise InvalidNameError(
                f"label of {len(label)} octets exceeds {MAX_LABEL_LENGTH}"
            )
    wire_length = sum(len(label) + 1 for label in labels)
    if wire_length > MAX_NAME_LENGTH:
        raise InvalidNameError(
            f"name of {wire_length} octets exceeds {MAX_NAME_LENGTH}"
        )


def _parse_text(text: Union[str, bytes]) -> List[bytes]:
    """Split presentation-format *text* into raw labels, dropping empty ones.

    Each dot-separated piece goes through :func:`dns.name.from_text`, which
    resolves ``\\DDD`` escapes and converts non-ASCII labels to IDNA.
    """
    pattern = _LABEL_BYTES if isinstance(text, bytes) else _LABEL_TEXT
    labels: List[bytes] = []
    for piece in pattern.findall(text):
        try:
            parsed = dns.name.from_text(piece, origin=None)
        except dns.exception.DNSException as exc:
            raise InvalidNameError(f"cannot parse {text!r}: {exc}") from exc
        labels.extend(label for label in parsed.labels if label)
    return labels


def canonical_key(name: DomainName) -> Tuple[bytes, ...]:
    """Return the sort key of *name*: case-folded labels, most significant first.

    Tuple comparison of these keys is exactly RFC 4034 canonical order: labels
    compare as unsigned octet strings (a shorter label that is a prefix sorts
    first) and a name whose key is a prefix of another's sorts first.
    """
    # bytes.lower() folds ASCII A-Z only
    return tuple(label.lower() for label in reversed(name.labels[:-1]))


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def normalize(name: NameLike) -> DomainName:
    """Parse *name* into a fully-qualified :class:`DomainName`.

    Empty labels are dropped and the root label is appended, so
    ``"foo.com"``, ``"foo..com."`` and ``".foo.com"`` all give ``foo.com.``.

    Args:
        name: Presentation-format text (``str`` or ``bytes``) or an existing
              :class:`DomainName`.

    Returns:
        The normalised name.

    Raises:
        InvalidNameError: On a label over 63 octets, a name over 255 octets,
            a malformed escape, or a label IDNA cannot encode.
    """
    if isinstance(name, DomainName):
        return name
    if not isinstance(name, (str, bytes)):
        raise InvalidNameError(f"cannot interpret {name!r} as a domain name")
    return DomainName(_parse_text(name) + [b""])


def compare(a: NameLike, b: NameLike) -> int:
    """Compare two names in canonical order.

    Returns:
        ``-1`` if *a* sorts before *b*, ``0`` if equal, ``1`` otherwise.
    """
    key_a = canonical_key(normalize(a))
    key_b = canonical_key(normalize(b))
    return (key_a > key_b) - (key_a < key_b)


def lower(name: NameLike) -> DomainName:
    """Return *name* with ASCII letters folded to lower case."""
    name = normalize(name)
    return DomainName(label.lower() for label in name.labels)


def is_subdomain(name: NameLike, suffix: NameLike) -> bool:
    """Return ``True`` if *name* equals *suffix* or lies underneath it."""
    key = canonical_key(normalize(name))
    suffix_key = canonical_key(normalize(suffix))
    return key[:len(suffix_key)] == suffix_key


def _bump_octet(octet: int) -> int:
    bumped = octet + 1
    # Upper-case letters fold away; the next octet that survives folding is '['
    if ord("A") <= bumped <= ord("Z"):
        return ord("Z") + 1
    return bumped


def increment(name: NameLike) -> DomainName:
    """Return the smallest name greater than *name* that changes only its first label.

    A first label shorter than 63 octets gets a trailing ``\\001`` octet.  A
    label already at the limit has its trailing ``\\255`` octets removed and
    its last remaining octet incremented instead.

    Example::

        >>> increment("foo.com.")
        DomainName('foo\\\\001.com.')

    Raises:
        InvalidNameError: For the root name.
        NameSpaceExhaustedError: When the first label is 63 ``\\255`` octets.
    """
    name = lower(name)
    if name.is_root:
        raise InvalidNameError("the root name cannot be incremented")
    first, rest = name.labels[0], name.labels[1:]

    if len(first) < MAX_LABEL_LENGTH and name.wire_length < MAX_NAME_LENGTH:
        return DomainName((first + b"\x01",) + rest)

    stripped = first.rstrip(b"\xff")
    if not stripped:
        raise NameSpaceExhaustedError(
            f"no label greater than {name.to_text()!r} fits in {MAX_LABEL_LENGTH} octets"
        )
    label = stripped[:-1] + bytes([_bump_octet(stripped[-1])])
    return DomainName((label,) + rest)


def first_child(name: NameLike) -> DomainName:
    """Return ``\\001.<name>``, the first practical name below *name*.

    Used as the probe point when stepping off a zone apex: incrementing the
    apex label itself would leave the zone.
    """
    name = lower(name)
    return DomainName((b"\x01",) + name.labels)


def predecessor(name: NameLike) -> DomainName:
    """Return a name sorting just below *name* at the same depth.

    The last octet of the first label is decremented and the label padded with
    ``\\255`` to the maximum length.  Only children of the returned name lie
    strictly between it and *name*, so probing it directly finds *name* (or
    whatever follows) as the next owner.
    """
    name = lower(name)
    if name.is_root:
        raise InvalidNameError("the root name has no predecessor")
    first, rest = name.labels[0], name.labels[1:]
    if first[-1] == 0:
        if len(first) == 1:
            return DomainName(rest)
        return DomainName((first[:-1],) + rest)

    octet = first[-1] - 1
    if ord("A") <= octet <= ord("Z"):
        octet = ord("A") - 1
    label = first[:-1] + bytes([octet])
    room = MAX_NAME_LENGTH - name.wire_length
    pad = max(0, min(MAX_LABEL_LENGTH - len(label), room))
    return DomainName((label + b"\xff" * pad,) + rest)
