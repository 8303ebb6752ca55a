# pgpkeyserver

Building blocks for an OpenPGP key server. The package models a
transferable public key as a set of packet records, parses the signature
and key packets they hold, optionally checks self-signatures, works out how
the records relate to one another and orders them the way a key server
presents them. It has no dependencies outside the standard library.

## Modules

- `pgpkeyserver.util`: `reverse`, `split_user_id` (full-text keywords from
  a user ID: name, comment and e-mail address, lower-cased, short words
  dropped) and `clean_utf8` (undecodable characters become `?`, control
  characters are dropped).
- `pgpkeyserver.packet`: `OpaquePacket` (a tag and its raw contents;
  `serialize()` writes it with a new-format header), `read_opaque_packets`
  (old- and new-format framing, including partial body lengths),
  `to_opaque_packet`, the `PacketState` flags, the `InvalidPacketType` and
  `PacketRecordState` errors (both `ValueError`s), and `sks_packet_key`,
  which orders packets by tag, then by contents.
- `pgpkeyserver.signature`: `parse_signature_packet` for version 3 and 4
  signature packets, `to_ascii85_string`, the `Signature` record and
  `new_signature`.
- `pgpkeyserver.keymaterial`: `PublicKeyPacket` and `parse_public_key` for
  version 3 and 4 public key and subkey packets (RSA, Elgamal, DSA).
  `fingerprint()` is SHA-1 for version 4 keys and MD5 for version 3 keys;
  `bit_length()` is that of the first key parameter.
- `pgpkeyserver.userid`, `pgpkeyserver.userattribute`,
  `pgpkeyserver.subkey`, `pgpkeyserver.pubkey`: the `UserId`,
  `UserAttribute`, `Subkey` and `Pubkey` records and their constructors
  `new_user_id`, `new_user_attribute`, `new_subkey` and `new_pubkey`.
  A primary key whose packet cannot be parsed is kept, flagged
  `PacketState.UNSUPP_PUBKEY`, with a fingerprint computed over the raw
  packet contents.
- `pgpkeyserver.resolve`: `resolve`, which computes scoped digests, links
  revocations, self-signatures and binding signatures, moves duplicate
  user IDs, user attributes, subkeys and signatures into the key's
  `unsupported` bytes, sorts the key and picks the primary user ID and user
  attribute.
- `pgpkeyserver.ordering`: `sort_key`, `sig_less` and `max_self_sig`.

## Example

Build a key from a binary (non-armored) key file and resolve it:

```python
from pgpkeyserver.packet import (
    TAG_PUBLIC_SUBKEY, TAG_SIGNATURE, TAG_USER_ATTRIBUTE, TAG_USER_ID,
    read_opaque_packets,
)
from pgpkeyserver.pubkey import new_pubkey
from pgpkeyserver.resolve import resolve
from pgpkeyserver.signature import new_signature
from pgpkeyserver.subkey import new_subkey
from pgpkeyserver.userattribute import new_user_attribute
from pgpkeyserver.userid import new_user_id

with open("key.gpg", "rb") as f:
    packets = list(read_opaque_packets(f.read()))

pubkey = new_pubkey(packets[0])
current = pubkey
for op in packets[1:]:
    if op.tag == TAG_USER_ID:
        current = new_user_id(op)
        pubkey.user_ids.append(current)
    elif op.tag == TAG_USER_ATTRIBUTE:
        current = new_user_attribute(op)
        pubkey.user_attributes.append(current)
    elif op.tag == TAG_PUBLIC_SUBKEY:
        current = new_subkey(op)
        pubkey.subkeys.append(current)
    elif op.tag == TAG_SIGNATURE:
        current.add_signature(new_signature(op))
    else:
        pubkey.append_unsupported(op)

resolve(pubkey)
print(pubkey.fingerprint(), pubkey.key_id(), pubkey.short_id())
if pubkey.primary_uid_record is not None:
    print(pubkey.primary_uid_record.keywords)
```

Self-signatures are only checked cryptographically when the key's
`verify_sigs` attribute is set to `True` before `resolve` runs (RSA and DSA
signatures); otherwise every self-signature is taken as valid.

## What it does not do

The package works on key material in memory only. It does not decode ASCII
armor, split a keyring into keys, compute key digests, store keys in a
database, serve HKP requests, take part in reconciliation with other key
servers, or gather statistics. Putting the records of a key together from
its packets, as in the example above, is left to the caller.

## Tests

```
pip install -e .[test]
pytest
```