"""Ordering of user IDs, user attributes, subkeys and signatures in a key."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from pgpkeyserver.signature import Signature
from pgpkeyserver.subkey import Subkey
from pgpkeyserver.userattribute import UserAttribute
from pgpkeyserver.userid import UserId


def _unix(dt: datetime) -> int:
    return int(dt.timestamp())


def sig_less(i_sig: Optional[Signature], j_sig: Optional[Signature]) -> bool:
    """Whether i_sig ranks ahead of j_sig: present, primary, then newer first."""
    if i_sig is not None and j_sig is not None:
        if i_sig.is_primary() != j_sig.is_primary():
            return i_sig.is_primary()
        return _unix(i_sig.creation) > _unix(j_sig.creation)
    return i_sig is not None


def max_self_sig(pubkey, sigs: Iterable[Signature]) -> Optional[Signature]:
    """The most recent signature among sigs issued by pubkey itself."""
    recent = None
    for sig in sigs:
        if not pubkey.r_fingerprint.startswith(sig.r_issuer_key_id):
            continue
        if recent is None or _unix(sig.creation) > _unix(recent.creation):
            recent = sig
    return recent


def _certified_order(pubkey):
    def key(record) -> tuple[int, int, int]:
        sig = max_self_sig(pubkey, record.signatures)
        if sig is None:
            return (1, 0, 0)
        return (0, 0 if sig.is_primary() else 1, -_unix(sig.creation))

    return key


def _sort_signatures(record) -> None:
    if isinstance(record, (UserId, UserAttribute, Subkey)):
        record.signatures.sort(key=lambda sig: _unix(sig.creation))


def sort_key(pubkey) -> None:
    """Reorder the key material in place.

    Signatures on user IDs, attributes and subkeys go oldest first; user IDs
    and attributes go by their latest self-signature (primary, then newest);
    revoked subkeys go first, then subkeys oldest first.
    """
    pubkey.visit(_sort_signatures)
    pubkey.user_ids.sort(key=_certified_order(pubkey))
    pubkey.user_attributes.sort(key=_certified_order(pubkey))
    pubkey.subkeys.sort(
        key=lambda subkey: (0 if subkey.rev_sig is not None else 1, _unix(subkey.creation))
    )