"""Resolution of relationships between the packet records of a public key."""

from __future__ import annotations

from typing import Iterable, Optional

from pgpkeyserver.ordering import sort_key
from pgpkeyserver.pubkey import Pubkey
from pgpkeyserver.signature import Signature
from pgpkeyserver.subkey import Subkey
from pgpkeyserver.userattribute import UserAttribute
from pgpkeyserver.userid import UserId


def _set_sig_scope(pubkey: Pubkey, scope: str, sigs: Iterable[Signature]) -> None:
    for sig in sigs:
        sig.scoped_digest = sig.calc_scoped_digest(pubkey, scope)


def _set_aside(pubkey: Pubkey, record) -> None:
    """Move a duplicate record and its signatures into the unsupported packets."""
    sig_packets = b"".join(sig.packet for sig in record.signatures)
    pubkey.unsupported = pubkey.unsupported + record.packet + sig_packets
    record.signatures = []


def resolve(pubkey: Pubkey) -> None:
    """Connect the packet records of a key, drop duplicates and pick primaries.

    Duplicate user IDs, user attributes, subkeys and signatures are removed
    from the key and their packets appended to its unsupported material.
    """
    seen: set[str] = set()
    signable: Optional[object] = None

    def visitor(rec) -> None:
        nonlocal signable
        if isinstance(rec, Pubkey):
            _set_sig_scope(pubkey, rec.r_fingerprint, rec.signatures)
            rec.link_self_sigs()
            signable = rec
        elif isinstance(rec, (UserId, UserAttribute)):
            rec.scoped_digest = rec.calc_scoped_digest(pubkey)
            if rec.scoped_digest in seen:
                if isinstance(rec, UserId):
                    pubkey.user_ids = [u for u in pubkey.user_ids if u is not rec]
                else:
                    pubkey.user_attributes = [
                        u for u in pubkey.user_attributes if u is not rec
                    ]
                _set_aside(pubkey, rec)
            else:
                seen.add(rec.scoped_digest)
                _set_sig_scope(pubkey, rec.scoped_digest, rec.signatures)
                rec.link_self_sigs(pubkey)
                signable = rec
        elif isinstance(rec, Subkey):
            if rec.r_fingerprint in seen:
                pubkey.subkeys = [s for s in pubkey.subkeys if s is not rec]
                _set_aside(pubkey, rec)
            else:
                seen.add(rec.r_fingerprint)
                _set_sig_scope(pubkey, rec.r_fingerprint, rec.signatures)
                rec.link_self_sigs(pubkey)
                signable = rec
        elif isinstance(rec, Signature):
            if rec.scoped_digest in seen:
                signable.remove_signature(rec)
                pubkey.unsupported = pubkey.unsupported + rec.packet
            else:
                seen.add(rec.scoped_digest)

    pubkey.visit(visitor)
    sort_key(pubkey)

    if pubkey.user_ids:
        uid = pubkey.user_ids[0]
        pubkey.primary_uid_record = uid
        pubkey.primary_uid_sig = uid.self_signature
        pubkey.primary_uid = uid.scoped_digest
    else:
        pubkey.primary_uid_record = None
        pubkey.primary_uid_sig = None
        pubkey.primary_uid = None

    if pubkey.user_attributes:
        uat = pubkey.user_attributes[0]
        pubkey.primary_uat_record = uat
        pubkey.primary_uat_sig = uat.self_signature
        pubkey.primary_uat = uat.scoped_digest
    else:
        pubkey.primary_uat_record = None
        pubkey.primary_uat_sig = None
        pubkey.primary_uat = None