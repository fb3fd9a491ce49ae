"""
hekv: Privacy-preserving exact-match key/value lookup.

The table owner encrypts every (key, value) row once. A query is
encrypted by the client; the server compares it against every encrypted
key with a Fermat equality mask, multiplies each mask into its value and
sums the results into one ciphertext.

The server NEVER sees the query, the table, or which row matched.
Only the holder of the secret key can decrypt the result.
"""

__version__ = "0.1.0"
